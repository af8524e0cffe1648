"""
auth/errors.py -- Failure taxonomy for the auth subsystem.

Stores and services raise these instead of letting infrastructure exceptions
(sqlalchemy, jose, bcrypt) escape. Each carries a human-readable message that
is safe to show to API clients.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every expected auth failure."""

    default_message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyExists(AuthError):
    default_message = "User is already exist."


class NotFound(AuthError):
    default_message = "Not found."


class WrongCredentials(AuthError):
    default_message = "Wrong credentials."


class InvalidToken(AuthError):
    default_message = "Invalid token."


class Forbidden(AuthError):
    default_message = "Forbidden resource"


class OperationFailed(AuthError):
    """Catch-all for unexpected persistence failures."""

    default_message = "Operation failed."
