"""
api/main.py -- FastAPI application entry point for the Nuber Eats account API.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost; Starlette puts the most recently
registered middleware on the outside):
  1. log_requests          -- method, path, status, latency for every request
  2. attach_identity       -- resolves the session token into request.state.user
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds the store, ledger, token service, mailer and account service
on startup and disposes of the database engine on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.identity import IdentityResolver, extract_token
from auth.store import UserStore
from auth.tokens import TokenService
from auth.verification import VerificationLedger
from core.config import get_settings
from mail.service import MailService
from users.service import AccountService

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("nubereats.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire the auth components into app.state for the server lifetime.

    The signing key is read from settings once here and handed to
    TokenService; nothing else holds it.
    """
    logger.info("Nuber Eats API starting up")
    store = UserStore(db_url=_settings.database_url, bcrypt_rounds=_settings.bcrypt_rounds)
    tokens = TokenService(_settings.secret_key, expire_seconds=_settings.token_expire_seconds)
    mailer = MailService(_settings.mailgun_api_key, _settings.mailgun_domain, _settings.mailgun_from_email)
    app.state.user_store = store
    app.state.identity_resolver = IdentityResolver(tokens, store)
    app.state.account_service = AccountService(store, VerificationLedger(store.engine), tokens, mailer)
    logger.info("Auth initialized (mail_enabled=%s)", mailer.enabled)

    yield

    store.close()
    logger.info("Nuber Eats API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Nuber Eats API",
    description="Accounts, session tokens and email verification.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-JWT"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Identity middleware
#
# Runs for every request and never rejects one. Protected routes enforce
# presence of an identity through the get_current_user dependency; public
# routes ignore it. The store lookup is blocking, so it runs in the thread pool.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def attach_identity(request: Request, call_next):
    request.state.user = None
    token = extract_token(request.headers)
    resolver: IdentityResolver | None = getattr(request.app.state, "identity_resolver", None)
    if token and resolver is not None:
        resolution = await run_in_threadpool(resolver.resolve, token)
        if resolution.user is None:
            logger.debug("Request left anonymous: %s", resolution.reason)
        request.state.user = resolution.user
    return await call_next(request)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Registered after attach_identity, so it wraps it and the logged latency
# includes token resolution.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No auth required.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database check."""
    store: UserStore = request.app.state.user_store
    database = "ok" if await run_in_threadpool(store.ping) else "error"
    return HealthResponse(version=API_VERSION, components={"app": "ok", "database": database})
