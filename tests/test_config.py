"""Unit tests for core/config.py -- SECRET_KEY policy and defaults."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_debug_generates_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    settings = Settings(debug=True, _env_file=None)
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError):
        Settings(debug=False, _env_file=None)


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError):
        Settings(debug=True, secret_key="short", _env_file=None)


def test_negative_expiry_rejected():
    with pytest.raises(ValidationError):
        Settings(debug=True, token_expire_seconds=-1, _env_file=None)


def test_defaults(monkeypatch):
    monkeypatch.delenv("TOKEN_EXPIRE_SECONDS", raising=False)
    monkeypatch.delenv("BCRYPT_ROUNDS", raising=False)
    settings = Settings(secret_key="k" * 32, _env_file=None)
    assert settings.token_expire_seconds == 0
    assert settings.bcrypt_rounds == 12
    assert settings.database_url.startswith("sqlite:///")


def test_env_vars_are_read(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "e" * 40)
    monkeypatch.setenv("TOKEN_EXPIRE_SECONDS", "3600")
    settings = Settings(_env_file=None)
    assert settings.secret_key == "e" * 40
    assert settings.token_expire_seconds == 3600
