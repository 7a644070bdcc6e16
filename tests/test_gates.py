"""Unit tests for auth/dependencies.py -- authentication and authorization gates.

The authentication gate is exercised directly through authenticate_token() so
each terminal state can be reached without HTTP. extract_token() gets a bare
Starlette Request built from an ASGI scope.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from starlette.requests import Request

from auth.dependencies import authenticate_token, authorize, changed_password_after, extract_token
from auth.errors import (
    AuthenticationFailed,
    Forbidden,
    IdentityGone,
    InvalidToken,
    NoCredential,
    StaleCredential,
)
from auth.models import Role, User
from auth.tokens import LOGGED_OUT, TokenCodec, epoch_ms
from conftest import TEST_CONFIG, make_user


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": raw})


def _past_codec(seconds_ago: int) -> TokenCodec:
    then = datetime.now(timezone.utc) - timedelta(seconds=seconds_ago)
    return TokenCodec(TEST_CONFIG, clock=lambda: then)


# ---------------------------------------------------------------------------
# Token extraction
# ---------------------------------------------------------------------------


class TestExtractToken:
    def test_bearer_header(self):
        assert extract_token(_request({"Authorization": "Bearer abc.def.ghi"})) == "abc.def.ghi"

    def test_cookie(self):
        assert extract_token(_request({"Cookie": "jwt=abc.def.ghi"})) == "abc.def.ghi"

    def test_header_wins_over_cookie(self):
        req = _request({"Authorization": "Bearer from-header", "Cookie": "jwt=from-cookie"})
        assert extract_token(req) == "from-header"

    def test_nothing_presented(self):
        assert extract_token(_request()) is None

    def test_non_bearer_scheme_ignored(self):
        assert extract_token(_request({"Authorization": "Basic dXNlcjpwYXNz"})) is None

    def test_logged_out_cookie_ignored(self):
        assert extract_token(_request({"Cookie": f"jwt={LOGGED_OUT}"})) is None


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------


class TestAuthenticateToken:
    def test_valid_token_authenticates(self, store, codec):
        user = make_user(store, "ok@example.com")
        resolved = authenticate_token(codec.issue(user), codec, store)
        assert resolved.id == user.id
        assert resolved.email == "ok@example.com"

    def test_no_token(self, store, codec):
        with pytest.raises(NoCredential):
            authenticate_token(None, codec, store)

    def test_invalid_token(self, store, codec):
        with pytest.raises(InvalidToken):
            authenticate_token("garbage", codec, store)

    def test_expired_token(self, store, codec):
        user = make_user(store, "old@example.com")
        token = _past_codec(TEST_CONFIG.token_ttl_seconds + 60).issue(user)
        with pytest.raises(InvalidToken):
            authenticate_token(token, codec, store)

    def test_deleted_identity(self, store, codec):
        user = make_user(store, "deleted@example.com")
        token = codec.issue(user)
        store.delete_user(user.id)
        with pytest.raises(IdentityGone):
            authenticate_token(token, codec, store)

    def test_deactivated_identity(self, store, codec):
        user = make_user(store, "inactive@example.com")
        token = codec.issue(user)
        user.is_active = False
        store.save(user)
        with pytest.raises(IdentityGone):
            authenticate_token(token, codec, store)

    def test_password_changed_after_issue_is_stale(self, store, codec):
        user = make_user(store, "stale@example.com")
        token = _past_codec(120).issue(user)
        user.password_changed_at = datetime.now(timezone.utc)
        store.save(user)
        with pytest.raises(StaleCredential):
            authenticate_token(token, codec, store)

    def test_password_changed_before_issue_is_fine(self, store, codec):
        user = make_user(store, "fresh@example.com")
        user.password_changed_at = datetime.now(timezone.utc) - timedelta(minutes=5)
        store.save(user)
        assert authenticate_token(codec.issue(user), codec, store).id == user.id

    def test_store_failure_is_generic_rejection(self, codec):
        broken = MagicMock()
        broken.get_by_id.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        token = codec.issue(User(id=1, email="x@example.com"))
        with pytest.raises(AuthenticationFailed):
            authenticate_token(token, codec, broken)

    def test_unexpected_failure_is_generic_rejection(self, codec):
        broken = MagicMock()
        broken.get_by_id.side_effect = RuntimeError("boom")
        token = codec.issue(User(id=1, email="x@example.com"))
        with pytest.raises(AuthenticationFailed):
            authenticate_token(token, codec, broken)


class TestChangedPasswordAfter:
    def test_never_changed(self):
        assert changed_password_after(User(email="a@example.com"), 0) is False

    def test_later_in_same_second_is_stale(self):
        issued = datetime(2026, 1, 1, 0, 0, 0, 100000, tzinfo=timezone.utc)
        changed = datetime(2026, 1, 1, 0, 0, 0, 900000, tzinfo=timezone.utc)
        user = User(email="a@example.com", password_changed_at=changed)
        assert changed_password_after(user, epoch_ms(issued)) is True

    def test_same_millisecond_is_not_stale(self):
        changed = datetime(2026, 1, 1, 0, 0, 0, 900000, tzinfo=timezone.utc)
        user = User(email="a@example.com", password_changed_at=changed)
        assert changed_password_after(user, epoch_ms(changed)) is False

    def test_change_before_issue_is_not_stale(self):
        changed = datetime(2026, 1, 1, 0, 0, 0, 100000, tzinfo=timezone.utc)
        user = User(email="a@example.com", password_changed_at=changed)
        assert changed_password_after(user, epoch_ms(changed) + 1) is False

    def test_change_within_the_same_second_rejects_earlier_token(self, store):
        user = make_user(store, "subsecond@example.com")
        issued = datetime.now(timezone.utc).replace(microsecond=100000)
        changed = issued.replace(microsecond=900000)
        old_token = TokenCodec(TEST_CONFIG, clock=lambda: issued).issue(user)
        user.password_changed_at = changed
        store.save(user)
        codec = TokenCodec(TEST_CONFIG, clock=lambda: changed)
        with pytest.raises(StaleCredential):
            authenticate_token(old_token, codec, store)
        assert authenticate_token(codec.issue(user), codec, store).id == user.id


# ---------------------------------------------------------------------------
# Authorization gate
# ---------------------------------------------------------------------------


class TestAuthorize:
    @pytest.mark.parametrize("role", [Role.admin, Role.superadmin])
    def test_member_role_allowed(self, role):
        authorize(User(email="a@example.com", role=role), {Role.admin, Role.superadmin})

    @pytest.mark.parametrize("role", [Role.user, Role.secretary])
    def test_non_member_forbidden(self, role):
        with pytest.raises(Forbidden) as exc:
            authorize(User(email="a@example.com", role=role), {Role.admin, Role.superadmin})
        assert exc.value.status_code == 403
        assert exc.value.message == "Forbidden"

    def test_single_role_is_exact_match(self):
        authorize(User(email="a@example.com", role=Role.secretary), Role.secretary)
        with pytest.raises(Forbidden):
            authorize(User(email="a@example.com", role=Role.superadmin), Role.secretary)
