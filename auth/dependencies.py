"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The identity middleware in api/main.py resolves the token once per request and
stores the result on request.state.user. These helpers only read it:

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() is the access guard: it raises HTTP 403 "Forbidden resource"
when no identity is attached, before the protected handler body runs. Every
protected operation uses the same check.

Layer rule: auth/dependencies.py may import from fastapi (for Request and
HTTPException) because this module is part of the FastAPI dependency
injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import Forbidden
from auth.models import User


def try_get_current_user(request: Request) -> User | None:
    """Return the User attached by the identity middleware, or None.

    Never raises. A request that bypassed the middleware reads as anonymous.
    """
    return getattr(request.state, "user", None)


def get_current_user(request: Request) -> User:
    """Require an identity. Raises HTTP 403 if the request is anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": Forbidden.default_message},
        )
    return user
