"""
tests/test_mail_service.py -- Unit tests for mail/service.py.

The module-level requests session is patched; no network calls are made.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import requests

from mail.service import EmailVar, MailService

TEST_DOMAIN = "test-domain"


def _service() -> MailService:
    return MailService(api_key="test-apiKey", domain=TEST_DOMAIN, from_email="test-fromEmail")


def test_send_verification_email_calls_send_email() -> None:
    service = _service()
    with patch.object(service, "send_email", return_value=True) as send_email:
        assert service.send_verification_email("email", "code") is True
    send_email.assert_called_once_with(
        "Verify Your Email",
        "verify-email",
        [EmailVar("code", "code"), EmailVar("username", "email")],
        to="email",
    )


def test_send_email_posts_to_mailgun() -> None:
    with patch("mail.service._session") as session:
        session.post.return_value = MagicMock(raise_for_status=MagicMock())
        ok = _service().send_email("Subject", "template", [EmailVar("code", "123")], to="a@x.com")

    assert ok is True
    session.post.assert_called_once()
    args, kwargs = session.post.call_args
    assert args[0] == f"https://api.mailgun.net/v3/{TEST_DOMAIN}/messages"
    assert kwargs["auth"] == ("api", "test-apiKey")
    data = dict(kwargs["data"])
    assert data["to"] == "a@x.com"
    assert data["subject"] == "Subject"
    assert data["template"] == "template"
    assert data["v:code"] == "123"
    assert data["from"] == f"Nuber Eats <mailgun@{TEST_DOMAIN}>"


def test_send_email_defaults_to_from_address() -> None:
    with patch("mail.service._session") as session:
        _service().send_email("Subject", "template", [])
    assert dict(session.post.call_args.kwargs["data"])["to"] == "test-fromEmail"


def test_send_email_fails_on_request_error() -> None:
    with patch("mail.service._session") as session:
        session.post.side_effect = requests.ConnectionError("boom")
        assert _service().send_email("", "", []) is False


def test_send_email_fails_on_http_error() -> None:
    with patch("mail.service._session") as session:
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("401")
        assert _service().send_email("", "", []) is False


def test_unconfigured_service_sends_nothing() -> None:
    service = MailService(api_key="", domain="")
    with patch("mail.service._session") as session:
        assert service.send_verification_email("a@x.com", "code") is False
    session.post.assert_not_called()
    assert service.enabled is False
