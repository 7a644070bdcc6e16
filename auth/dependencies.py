"""
auth/dependencies.py -- Authentication and authorization gates as FastAPI deps.

Authentication gate, one terminal state per request:
  1. No Bearer header and no "jwt" cookie           -> NoCredential
  2. Signature/claims/expiry check fails           -> InvalidToken
  3. No (active) identity for the id claim          -> IdentityGone
  4. Password changed after the credential's iat_ms -> StaleCredential
  5. Otherwise the identity is attached to request.state.user

Anything unexpected on the way (store down, broken row) becomes
AuthenticationFailed. Nothing passes through unauthenticated.

Authorization gate: authorize() is a pure role-membership predicate.
require_roles() builds a dependency that runs it after get_current_user(),
so it never sees an unresolved identity.

get_current_user() is the hard variant (raises). try_get_current_user() is
the soft variant used by the login-status route (returns None).

Layer rule: no imports from api/ or mail/. This module may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import (
    AuthenticationFailed,
    AuthError,
    Forbidden,
    IdentityGone,
    InvalidToken,
    NoCredential,
    StaleCredential,
)
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import LOGGED_OUT, TokenCodec, epoch_ms

logger = logging.getLogger("authgate.auth")

_COOKIE_NAME = "jwt"


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------


def extract_token(request: Request, cookie_name: str = _COOKIE_NAME) -> str | None:
    """Return the presented credential, Bearer header first, then the cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token

    token = request.cookies.get(cookie_name)
    if token and token != LOGGED_OUT:
        return token
    return None


def authenticate_token(token: str | None, codec: TokenCodec, store: UserStore) -> User:
    """Run the gate state machine for one presented credential."""
    if not token:
        raise NoCredential()

    try:
        claims = codec.verify(token)
        user = store.get_by_id(claims.id)
    except InvalidToken:
        raise
    except SQLAlchemyError as exc:
        logger.error("Identity store unavailable during authentication: %s", exc)
        raise AuthenticationFailed() from exc
    except Exception as exc:
        logger.exception("Unexpected failure during authentication")
        raise AuthenticationFailed() from exc

    if user is None or not user.is_active:
        raise IdentityGone()

    if changed_password_after(user, claims.issued_at_ms):
        raise StaleCredential()

    return user


def changed_password_after(user: User, issued_at_ms: int) -> bool:
    """True if the password was committed in a later millisecond than issued_at_ms."""
    if user.password_changed_at is None:
        return False
    return epoch_ms(user.password_changed_at) > issued_at_ms


def get_current_user(request: Request) -> User:
    """Require authentication. Raises an AuthError subclass if unauthenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    codec: TokenCodec = request.app.state.codec
    store: UserStore = request.app.state.user_store
    token = extract_token(request, codec.config.cookie_name)
    try:
        user = authenticate_token(token, codec, store)
    except AuthError as exc:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
        raise
    request.state.user = user
    return user


def try_get_current_user(request: Request) -> User | None:
    """Soft variant of get_current_user(). Returns None on any rejection."""
    try:
        return get_current_user(request)
    except AuthError:
        return None


# ---------------------------------------------------------------------------
# Authorization gate
# ---------------------------------------------------------------------------


def authorize(user: User, allowed_roles: Role | Iterable[Role]) -> None:
    """Raise Forbidden unless the user's role is allowed.

    A single Role is an exact-match check; an iterable is a membership check.
    """
    if isinstance(allowed_roles, Role):
        allowed = {allowed_roles}
    else:
        allowed = {Role(r) for r in allowed_roles}
    if Role(user.role) not in allowed:
        raise Forbidden()


def require_roles(*roles: Role) -> Callable[..., User]:
    """Dependency factory: authenticated identity whose role is one of roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(user: User = Depends(require_roles(Role.admin, Role.superadmin))): ...
    """
    if not roles:
        raise ValueError("require_roles() needs at least one role")
    allowed = frozenset(roles)

    def dependency(user: User = Depends(get_current_user)) -> User:
        authorize(user, allowed)
        return user

    return dependency
