"""
tests/conftest.py -- Shared test fixtures for AuthGate.

This module provides:
  - RecordingMailer: stands in for MailSender; records messages, can fail on demand
  - make_user(): inserts a user with a bcrypt-hashed password
  - store / codec / resets: unit-test collaborators on a private in-memory DB
  - api: an ApiEnv (TestClient + the collaborators wired into app.state)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because route handlers run in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG and RATE_LIMIT_ENABLED must be set before any app import so
get_settings() auto-generates SECRET_KEY and the limiter is built disabled.
"""

from __future__ import annotations

import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.reset import ResetSecretManager
from auth.store import UserStore
from auth.tokens import TokenCodec, hash_password
from core.config import AuthConfig
from mail.sender import DeliveryError, MailMessage

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"
TEST_CONFIG = AuthConfig(
    secret_key=TEST_SECRET,
    token_ttl_seconds=3600,
    reset_ttl_seconds=600,
    cookie_secure=False,
)


# ---------------------------------------------------------------------------
# Collaborator doubles and helpers
# ---------------------------------------------------------------------------


@dataclass
class RecordingMailer:
    """MailSender stand-in. Set fail=True to simulate a delivery failure."""

    sent: list[MailMessage] = field(default_factory=list)
    fail: bool = False
    is_configured: bool = True

    def send(self, message: MailMessage) -> None:
        if self.fail:
            raise DeliveryError("smtp down")
        self.sent.append(message)

    def last_reset_secret(self) -> str:
        match = re.search(r"/api/v1/users/resetPassword/([0-9a-f]+)", self.sent[-1].body)
        assert match, f"no reset link in mail body: {self.sent[-1].body!r}"
        return match.group(1)


def make_user(store: UserStore, email: str, password: str = "password123", role: Role = Role.user) -> User:
    user = User(email=email, role=role, hashed_password=hash_password(password), name=email.split("@")[0])
    store.create_user(user)
    return user


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_CONFIG)


@pytest.fixture
def resets() -> ResetSecretManager:
    return ResetSecretManager(TEST_CONFIG)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


# ---------------------------------------------------------------------------
# Integration fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    store: UserStore
    codec: TokenCodec
    resets: ResetSecretManager
    mailer: RecordingMailer


def _patch_lifespan(env_store: UserStore, codec: TokenCodec, resets: ResetSecretManager, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = env_store
        app.state.codec = codec
        app.state.resets = resets
        app.state.mailer = mailer
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def _api_module(request) -> Generator[ApiEnv, None, None]:
    """One TestClient per test module, on a DB named after the module."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    env_store = UserStore(db_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    codec = TokenCodec(TEST_CONFIG)
    resets = ResetSecretManager(TEST_CONFIG)
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(env_store, codec, resets, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(client=client, store=env_store, codec=codec, resets=resets, mailer=mailer)

    env_store.close()


@pytest.fixture
def api(_api_module: ApiEnv) -> ApiEnv:
    """Per-test view of the module client: cookie jar emptied, mailer reset."""
    _api_module.client.cookies.clear()
    _api_module.mailer.sent.clear()
    _api_module.mailer.fail = False
    return _api_module
