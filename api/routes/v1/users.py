"""
api/routes/v1/users.py -- Account and authentication REST endpoints.

Routes:
  POST  /api/v1/users/create-account   -- register; mails a verification code
  POST  /api/v1/users/login            -- returns a session token
  POST  /api/v1/users/verify-email     -- consumes a verification code
  GET   /api/v1/users/me               -- current identity (requires auth)
  PATCH /api/v1/users/me               -- change email and/or password (requires auth)
  GET   /api/v1/users/{user_id}        -- another user's profile (requires auth)

Operation results always come back as HTTP 200 with {ok, error, ...}. Only the
access guard (get_current_user) produces a non-200: 403 Forbidden resource.

Login responses carry Cache-Control: no-store [M5].
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from auth.dependencies import get_current_user
from auth.models import User
from users.dtos import (
    CreateAccountInput,
    CreateAccountOutput,
    EditProfileInput,
    EditProfileOutput,
    LoginInput,
    LoginOutput,
    UserProfileOutput,
    UserView,
    VerifyEmailInput,
    VerifyEmailOutput,
)
from users.service import AccountService

# Auth policy:
# - POST  /users/create-account: public
# - POST  /users/login:          public
# - POST  /users/verify-email:   public -- the code itself is the credential
# - GET   /users/me:             requires auth (get_current_user)
# - PATCH /users/me:             requires auth (get_current_user)
# - GET   /users/{user_id}:      requires auth (get_current_user)
router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/create-account", response_model=CreateAccountOutput)
def create_account(body: CreateAccountInput, service: AccountService = Depends(_service)) -> CreateAccountOutput:
    """Register a new account and send its first verification code."""
    return service.create_account(body.email, body.password, body.role)


@router.post("/users/login", response_model=LoginOutput)
def login(body: LoginInput, response: Response, service: AccountService = Depends(_service)) -> LoginOutput:
    """Exchange email and password for a session token."""
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return service.login(body.email, body.password)


@router.post("/users/verify-email", response_model=VerifyEmailOutput)
def verify_email(body: VerifyEmailInput, service: AccountService = Depends(_service)) -> VerifyEmailOutput:
    return service.verify_email(body.code)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=UserView)
def me(current_user: User = Depends(get_current_user)) -> UserView:
    """Return the identity the request's token resolved to."""
    return UserView.from_user(current_user)


@router.patch("/users/me", response_model=EditProfileOutput)
def edit_profile(
    body: EditProfileInput,
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(_service),
) -> EditProfileOutput:
    """Change the caller's email and/or password.

    A new email resets verification and invalidates the previous code.
    """
    return service.edit_profile(current_user.id, email=body.email, password=body.password)


@router.get("/users/{user_id}", response_model=UserProfileOutput)
def user_profile(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(_service),
) -> UserProfileOutput:
    return service.user_profile(user_id)
