"""
tests/test_identity.py -- Unit tests for auth/identity.py and auth/dependencies.py.

Covers:
  - token extraction from X-JWT and Authorization: Bearer
  - every Anonymous branch of the resolver, each with its reason code
  - the resolver never raises, even when the store is broken
  - resolving the same token twice gives the same answer
  - the access guard raises 403 only when no identity is attached
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from auth.dependencies import get_current_user, try_get_current_user
from auth.errors import OperationFailed
from auth.identity import IdentityResolver, Resolution, extract_token
from auth.models import User, UserRole
from auth.store import UserStore
from auth.tokens import TokenService


@pytest.fixture
def resolver(tokens, store) -> IdentityResolver:
    return IdentityResolver(tokens, store)


class TestExtractToken:
    def test_x_jwt_header(self) -> None:
        assert extract_token({"X-JWT": "abc"}) == "abc"

    def test_bearer_header(self) -> None:
        assert extract_token({"Authorization": "Bearer abc"}) == "abc"

    def test_x_jwt_wins_over_bearer(self) -> None:
        assert extract_token({"X-JWT": "first", "Authorization": "Bearer second"}) == "first"

    def test_no_token(self) -> None:
        assert extract_token({}) is None
        assert extract_token({"Authorization": "Basic abc"}) is None
        assert extract_token({"Authorization": "Bearer "}) is None


class TestResolver:
    def test_no_token_is_anonymous(self, resolver: IdentityResolver) -> None:
        assert resolver.resolve(None) == Resolution(None, "no_token")

    def test_invalid_token_is_anonymous(self, resolver: IdentityResolver) -> None:
        assert resolver.resolve("not-a-token") == Resolution(None, "invalid_token")

    def test_foreign_key_token_is_anonymous(self, resolver: IdentityResolver, store: UserStore) -> None:
        uid = store.register("a@x.com", "pw1", UserRole.client)
        forged = TokenService("z" * 40).sign(uid)
        assert resolver.resolve(forged).reason == "invalid_token"

    def test_deleted_user_is_anonymous(self, resolver: IdentityResolver, tokens: TokenService) -> None:
        assert resolver.resolve(tokens.sign(999)) == Resolution(None, "user_not_found")

    def test_valid_token_is_identified(self, resolver: IdentityResolver, tokens: TokenService, store: UserStore) -> None:
        uid = store.register("a@x.com", "pw1", UserRole.owner)
        resolution = resolver.resolve(tokens.sign(uid))
        assert resolution.reason is None
        assert resolution.user.id == uid
        assert resolution.user.email == "a@x.com"

    def test_store_failure_is_anonymous(self, tokens: TokenService) -> None:
        broken = MagicMock(spec=UserStore)
        broken.get_by_id.side_effect = OperationFailed()
        resolution = IdentityResolver(tokens, broken).resolve(tokens.sign(1))
        assert resolution == Resolution(None, "lookup_failed")

    def test_resolution_is_idempotent(self, resolver: IdentityResolver, tokens: TokenService, store: UserStore) -> None:
        uid = store.register("a@x.com", "pw1", UserRole.client)
        token = tokens.sign(uid)
        assert resolver.resolve(token) == resolver.resolve(token)
        assert resolver.resolve("junk") == resolver.resolve("junk")


class TestAccessGuard:
    @staticmethod
    def _request(user: User | None):
        return SimpleNamespace(state=SimpleNamespace(user=user))

    def test_anonymous_is_forbidden(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(self._request(None))
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == {"code": "forbidden", "message": "Forbidden resource"}

    def test_missing_state_is_forbidden(self) -> None:
        with pytest.raises(HTTPException):
            get_current_user(SimpleNamespace(state=SimpleNamespace()))

    def test_identified_passes_user_through(self) -> None:
        user = User(email="a@x.com", role=UserRole.client, id=1)
        assert get_current_user(self._request(user)) is user
        assert try_get_current_user(self._request(user)) is user

    def test_soft_variant_returns_none(self) -> None:
        assert try_get_current_user(self._request(None)) is None
