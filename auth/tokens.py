"""
auth/tokens.py -- Stateless session tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the numeric user_id and, when an
       expiry is configured, an exp claim. Nothing is persisted: a token is
       valid for as long as the key that signed it and its exp allow.

  Key custody: the signing key is passed to TokenService at construction. There
       is no module-level key, so differently keyed services can coexist (tests
       rely on this) and the key never changes for the lifetime of an instance.

  Tamper evidence: HMAC-SHA256 covers header and payload. Base64url has slack
       in the last character of a segment (unused low bits), so a changed
       final character can decode to the same bytes and still verify. verify()
       therefore rejects any segment that is not in canonical encoding, which
       makes every single-character change fail.

Layer rule: no imports from api/, users/, or mail/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import JOSEError
from jose.utils import base64url_decode, base64url_encode

from auth.errors import InvalidToken

_ALGORITHM = "HS256"


class TokenService:
    """Signs and verifies session tokens bound to a user id.

    Usage:
        tokens = TokenService(settings.secret_key)
        token = tokens.sign(42)
        tokens.verify(token)  # -> 42
    """

    def __init__(self, secret_key: str, expire_seconds: int = 0) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def sign(self, user_id: int) -> str:
        """Encode a signed token for user_id.

        An exp claim is only added when expire_seconds > 0.
        """
        payload: dict = {"user_id": user_id}
        if self.expire_seconds > 0:
            payload["exp"] = datetime.now(timezone.utc) + timedelta(seconds=self.expire_seconds)
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> int:
        """Return the user id the token was signed for.

        Raises InvalidToken for every kind of bad input (wrong signature,
        undecodable or incomplete payload, expired, malformed string). No other
        exception type leaves this method.
        """
        if not isinstance(token, str) or not token:
            raise InvalidToken("Token is missing.")
        if not _is_canonical(token):
            raise InvalidToken("Token is malformed.")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JOSEError as exc:
            raise InvalidToken(str(exc) or "Token signature is invalid.") from exc
        user_id = payload.get("user_id") if isinstance(payload, dict) else None
        # bool is an int subclass; a forged True must not pass as user 1.
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise InvalidToken("Token payload has no user id.")
        return user_id


def _is_canonical(token: str) -> bool:
    """True if token has three segments, each in canonical base64url form."""
    segments = token.split(".")
    if len(segments) != 3:
        return False
    for segment in segments:
        try:
            raw = segment.encode("ascii")
            if base64url_encode(base64url_decode(raw)) != raw:
                return False
        except (ValueError, UnicodeError):
            return False
    return True
