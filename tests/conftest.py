"""
tests/conftest.py -- Shared test fixtures.

This module provides:
  - store / ledger / tokens / mailer / service: unit-level components on a
    private in-memory SQLite database
  - live_code: reads a user's outstanding verification code straight from the table
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient against the real app with isolated stores

Design: the HTTP fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers and the identity lookup
in a thread pool. Plain :memory: DBs are per-connection and would present a
blank schema to each worker thread.

bcrypt runs at its minimum cost (4 rounds) everywhere in tests.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from api.main import app
from auth.identity import IdentityResolver
from auth.store import UserStore, verification_codes_table
from auth.tokens import TokenService
from auth.verification import VerificationLedger
from mail.service import MailService
from users.service import AccountService

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"
TEST_ROUNDS = 4


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:", bcrypt_rounds=TEST_ROUNDS)
    yield s
    s.close()


@pytest.fixture
def ledger(store: UserStore) -> VerificationLedger:
    return VerificationLedger(store.engine)


@pytest.fixture
def live_code(store: UserStore):
    """Return a reader for the outstanding verification code of a user, or None."""

    def _read(user_id: int) -> str | None:
        codes = verification_codes_table
        with store.engine.connect() as conn:
            return conn.execute(select(codes.c.code).where(codes.c.user_id == user_id)).scalar_one_or_none()

    return _read


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET)


@pytest.fixture
def mailer() -> MagicMock:
    """Mail collaborator that reports successful delivery."""
    m = MagicMock(spec=MailService)
    m.send_verification_email.return_value = True
    return m


@pytest.fixture
def service(store, ledger, tokens, mailer) -> AccountService:
    return AccountService(store, ledger, tokens, mailer)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: UserStore, tokens: TokenService, mailer: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so routes see the
    isolated test DB and a mocked mailer rather than Mailgun.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.identity_resolver = IdentityResolver(tokens, store)
        app.state.account_service = AccountService(store, VerificationLedger(store.engine), tokens, mailer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore, TokenService, MagicMock], None, None]:
    """Yield (client, store, tokens, mailer) for API integration tests.

    One client per test module; tests within a module share the database and
    must use distinct emails.
    """
    db_name = f"test_api_{uuid.uuid4().hex}"
    store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true", bcrypt_rounds=TEST_ROUNDS)
    tokens = TokenService(TEST_SECRET)
    mailer = MagicMock(spec=MailService)
    mailer.send_verification_email.return_value = True

    app.router.lifespan_context = _patch_lifespan(store, tokens, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, tokens, mailer

    store.close()
