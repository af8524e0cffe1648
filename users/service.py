"""
users/service.py -- Account operations.

AccountService is the only place that combines the credential store, the
verification ledger, the token service and the mailer. Each public method
returns a CoreOutput and never raises: expected failures (AuthError) map to
their user-facing message, anything else is logged and reported with the
operation's generic message.

Atomic units:
  create_account  user insert + first verification code
  edit_profile    email change + verified reset + code replacement (+ password)
  verify_email    code deletion + verified flip

Each unit is one database transaction. Email goes out only after the
transaction commits, and a failed send never changes the result.
"""

from __future__ import annotations

import logging

from auth.errors import AlreadyExists, AuthError, NotFound, WrongCredentials
from auth.models import UserRole
from auth.store import UserStore
from auth.tokens import TokenService
from auth.verification import VerificationLedger
from mail.service import MailService
from users.dtos import (
    CreateAccountOutput,
    EditProfileOutput,
    LoginOutput,
    UserProfileOutput,
    UserView,
    VerifyEmailOutput,
)

logger = logging.getLogger("nubereats.users")


class AccountService:
    """Usage:
    service = AccountService(store, VerificationLedger(store.engine), TokenService(key), mailer)
    service.create_account("a@x.com", "pw1", UserRole.owner)  # -> CreateAccountOutput(ok=True)
    """

    def __init__(
        self,
        store: UserStore,
        ledger: VerificationLedger,
        tokens: TokenService,
        mailer: MailService,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.tokens = tokens
        self.mailer = mailer

    def create_account(self, email: str, password: str, role: UserRole) -> CreateAccountOutput:
        try:
            with self.store.transaction() as conn:
                user_id = self.store.register(email, password, role, conn=conn)
                code = self.ledger.issue(user_id, conn=conn)
        except AlreadyExists:
            return CreateAccountOutput(ok=False, error="User is already exist.")
        except Exception:
            logger.exception("create_account failed")
            return CreateAccountOutput(ok=False, error="Can not create an account.")
        self._send_verification(email, code)
        return CreateAccountOutput(ok=True)

    def login(self, email: str, password: str) -> LoginOutput:
        try:
            user_id = self.store.verify_credentials(email, password)
            token = self.tokens.sign(user_id)
        except NotFound:
            return LoginOutput(ok=False, error="User does not exist.")
        except WrongCredentials:
            return LoginOutput(ok=False, error="Wrong credentials.")
        except Exception:
            logger.exception("login failed")
            return LoginOutput(ok=False, error="Can not log user in.")
        logger.info("User %s logged in", user_id)
        return LoginOutput(ok=True, token=token)

    def user_profile(self, user_id: int) -> UserProfileOutput:
        try:
            user = self.store.find_by_id(user_id)
        except AuthError:
            return UserProfileOutput(ok=False, error="User not found.")
        return UserProfileOutput(ok=True, user=UserView.from_user(user))

    def edit_profile(self, user_id: int, email: str | None = None, password: str | None = None) -> EditProfileOutput:
        """Change email and/or password. Omitted fields are left alone.

        A new email resets verified, replaces the outstanding code and mails the
        new one. The current password is not required to set a new one.
        """
        code = None
        try:
            with self.store.transaction() as conn:
                if email:
                    self.store.update_email(user_id, email, conn=conn)
                    code = self.ledger.issue(user_id, conn=conn)
                if password:
                    self.store.update_password(user_id, password, conn=conn)
        except AuthError as exc:
            logger.info("edit_profile rejected for user %s: %s", user_id, exc.message)
            return EditProfileOutput(ok=False, error="Could not update profile.")
        except Exception:
            logger.exception("edit_profile failed for user %s", user_id)
            return EditProfileOutput(ok=False, error="Could not update profile.")
        if code is not None:
            self._send_verification(email, code)
        return EditProfileOutput(ok=True)

    def verify_email(self, code: str) -> VerifyEmailOutput:
        try:
            with self.store.transaction() as conn:
                user_id = self.ledger.consume(code, conn=conn)
                self.store.mark_verified(user_id, conn=conn)
        except NotFound:
            return VerifyEmailOutput(ok=False, error="Verification not found.")
        except Exception:
            logger.exception("verify_email failed")
            return VerifyEmailOutput(ok=False, error="Could not verify email.")
        logger.info("User %s verified their email", user_id)
        return VerifyEmailOutput(ok=True)

    def _send_verification(self, email: str, code: str) -> None:
        """Best-effort delivery. Failures are logged, never propagated."""
        try:
            sent = self.mailer.send_verification_email(email, code)
        except Exception:
            logger.exception("Verification email to %s raised", email)
            return
        if not sent:
            logger.warning("Verification email to %s was not delivered", email)
