"""Unit tests for core/config.py -- Settings validation and AuthConfig."""

from __future__ import annotations

import pytest

from core.config import AuthConfig, Settings

GOOD_KEY = "k" * 32


def test_production_requires_secret_key():
    with pytest.raises(ValueError):
        Settings(debug=False, secret_key="")


def test_debug_generates_secret_key():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected():
    with pytest.raises(ValueError):
        Settings(debug=True, secret_key="short")


def test_non_positive_lifetimes_rejected():
    with pytest.raises(ValueError):
        Settings(debug=True, secret_key=GOOD_KEY, reset_token_expire_seconds=0)


def test_defaults():
    settings = Settings(debug=True, secret_key=GOOD_KEY)
    assert settings.token_expire_seconds == 90 * 24 * 3600
    assert settings.reset_token_expire_seconds == 600


@pytest.mark.parametrize(
    ("debug", "override", "expected"),
    [
        (False, None, True),
        (True, None, False),
        (True, True, True),
        (False, False, False),
    ],
)
def test_cookie_secure_follows_production_mode(debug, override, expected):
    settings = Settings(debug=debug, secret_key=GOOD_KEY, secure_cookies=override)
    assert settings.cookie_secure is expected


def test_auth_config_from_settings():
    settings = Settings(debug=False, secret_key=GOOD_KEY, token_expire_seconds=120, reset_token_expire_seconds=300)
    config = AuthConfig.from_settings(settings)
    assert config == AuthConfig(
        secret_key=GOOD_KEY,
        token_ttl_seconds=120,
        reset_ttl_seconds=300,
        cookie_name="jwt",
        cookie_secure=True,
    )
    with pytest.raises(AttributeError):
        config.secret_key = "changed"  # frozen
