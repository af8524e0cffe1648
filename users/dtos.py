"""
users/dtos.py -- Input and output shapes for account operations.

Every operation answers with the CoreOutput envelope: ok plus an optional
human-readable error, and any operation-specific payload. Failures are data,
not exceptions, so API clients never see stack traces or internal detail.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from auth.models import User, UserRole

# Deliberately loose: one @, no whitespace, a dot in the domain. Deliverability
# is proven by the verification email, not by the regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt rejects passwords longer than 72 bytes. The character cap bounds the
# field; the byte check in _check_password_bytes is what keeps hashing safe.
_PASSWORD_MAX = 72
PASSWORD_MAX_BYTES = 72


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class CoreOutput(BaseModel):
    ok: bool
    error: Optional[str] = None


class CreateAccountOutput(CoreOutput):
    pass


class LoginOutput(CoreOutput):
    token: Optional[str] = None


class EditProfileOutput(CoreOutput):
    pass


class VerifyEmailOutput(CoreOutput):
    pass


class UserView(BaseModel):
    """Public projection of a User. There is no password field to leak."""

    id: int
    email: str
    role: UserRole
    verified: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            verified=user.verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserProfileOutput(CoreOutput):
    user: Optional[UserView] = None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class CreateAccountInput(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    role: UserRole

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


class LoginInput(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=_PASSWORD_MAX)


class EditProfileInput(BaseModel):
    """Both fields optional; omitted fields are left unchanged."""

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: Optional[str]) -> Optional[str]:
        return _check_password_bytes(v)


class VerifyEmailInput(BaseModel):
    code: str = Field(min_length=1, max_length=64)
