"""
mail/service.py -- Mailgun client.

Delivery is best effort. send_email() returns False instead of raising on
any transport or HTTP error, and callers treat False as "log and move on":
an account is created, or a profile edited, whether or not the email arrives.

Module-level requests.Session for connection pooling, same as other outbound
HTTP in this codebase. max_redirects=3 is generous for a known API endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger("nubereats.mail")

MAILGUN_API = "https://api.mailgun.net/v3/{domain}/messages"

_session = requests.Session()
_session.max_redirects = 3


@dataclass
class EmailVar:
    key: str
    value: str


class MailService:
    """Sends templated emails through Mailgun.

    An empty api_key or domain disables delivery: every send logs a warning and
    returns False. That keeps local development working without credentials.
    """

    def __init__(self, api_key: str, domain: str, from_email: str = "", timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.domain)

    def send_email(self, subject: str, template: str, email_vars: list[EmailVar], to: str = "") -> bool:
        """Send one templated message. Returns True if Mailgun accepted it."""
        if not self.enabled:
            logger.warning("Mail delivery disabled (MAILGUN_API_KEY / MAILGUN_DOMAIN not set); %r not sent", subject)
            return False
        data = [
            ("from", f"Nuber Eats <mailgun@{self.domain}>"),
            ("to", to or self.from_email),
            ("subject", subject),
            ("template", template),
        ]
        data.extend((f"v:{var.key}", var.value) for var in email_vars)
        try:
            resp = _session.post(
                MAILGUN_API.format(domain=self.domain),
                auth=("api", self.api_key),
                data=data,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Mailgun send failed for template %s: %s", template, e)
            return False
        return True

    def send_verification_email(self, email: str, code: str) -> bool:
        return self.send_email(
            "Verify Your Email",
            "verify-email",
            [EmailVar("code", code), EmailVar("username", email)],
            to=email,
        )
