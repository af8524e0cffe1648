"""
auth/identity.py -- Per-request identity resolution.

The resolver turns an optional token into an optional User. It never raises
and never rejects a request: a missing, forged, expired or orphaned token all
leave the request anonymous, because public operations (createAccount, login,
verifyEmail) must keep working for clients holding a stale token.

Instead of swallowing exceptions silently, resolve() returns a Resolution with
a short reason code. The HTTP middleware in api/main.py decides what to log.

Token sources, in priority order:
  1. X-JWT header -- the header the web and mobile clients send.
  2. Authorization: Bearer <token> -- generic API clients.

Layer rule: no imports from api/, users/, or mail/.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from auth.errors import InvalidToken, OperationFailed
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenService

TOKEN_HEADER = "X-JWT"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one request. reason is None when user is set."""

    user: User | None
    reason: str | None = None


def extract_token(headers: Mapping[str, str]) -> str | None:
    """Return the raw token from the request headers, or None.

    Starlette's Headers are case-insensitive; plain dicts in tests should use
    the canonical capitalisation.
    """
    token = headers.get(TOKEN_HEADER)
    if token:
        return token.strip()
    auth_header = headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


class IdentityResolver:
    """Resolves a token to a User via TokenService and UserStore."""

    def __init__(self, tokens: TokenService, store: UserStore) -> None:
        self.tokens = tokens
        self.store = store

    def resolve(self, token: str | None) -> Resolution:
        if not token:
            return Resolution(None, "no_token")
        try:
            user_id = self.tokens.verify(token)
        except InvalidToken:
            return Resolution(None, "invalid_token")
        try:
            user = self.store.get_by_id(user_id)
        except OperationFailed:
            return Resolution(None, "lookup_failed")
        if user is None:
            return Resolution(None, "user_not_found")
        return Resolution(user)
