"""
auth/tokens.py -- Credential codec, password hashing, and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256. TokenCodec signs
       {id, email, role, iat, iat_ms, exp, jti} with the secret it was
       constructed with. Every issuance path (login, signup, password change,
       reset) goes through TokenCodec.issue(), so the claim shape is always the
       same. verify() fails closed: a bad signature, a malformed claim, or an
       expiry that is not in the future all raise.

       iat_ms is the issue time in milliseconds. The gate compares it with
       password_changed_at, so a password change later in the same second
       still makes the credential stale.

       Expiry is checked against the codec's own clock rather than jose's, so
       issue() and verify() share one timeline and tests can move it.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  Cookie: the credential travels in the "jwt" cookie as well as the JSON body.
       max_age always equals the credential TTL so both expire together.

Layer rule: no imports from api/ or mail/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidSignature, TokenExpired
from auth.models import Role, TokenClaims
from core.config import AuthConfig

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("authgate.auth")

_ALGORITHM = "HS256"

# Placeholder written by logout. Never a valid JWT.
LOGGED_OUT = "loggedout"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware datetime (exact, no float)."""
    return (moment - _EPOCH) // timedelta(milliseconds=1)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    72 characters of input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash (constant-time)."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store.
        return False


# Timing equalization dummy hash [C1].
_DUMMY_HASH: str = hash_password("authgate_timing_dummy")


# ---------------------------------------------------------------------------
# Credential codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies bearer credentials.

    Stateless apart from the injected config and clock:
        codec = TokenCodec(AuthConfig.from_settings(get_settings()))
        token = codec.issue(user)
        claims = codec.verify(token)
    """

    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = utcnow) -> None:
        self.config = config
        self.clock = clock

    def issue(self, user: User) -> str:
        """Encode a signed credential for the given identity."""
        now = self.clock()
        issued_at = int(now.timestamp())
        payload = {
            "id": user.id,
            "email": user.email,
            "role": Role(user.role).value,
            "iat": issued_at,
            "iat_ms": epoch_ms(now),
            "exp": issued_at + self.config.token_ttl_seconds,
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self.config.secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a credential.

        Raises InvalidSignature on any decode/signature failure or malformed
        claim set, TokenExpired when exp is not in the future. Both are
        InvalidToken subclasses.
        """
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidSignature() from exc

        try:
            claims = TokenClaims(
                id=int(payload["id"]),
                email=str(payload["email"]),
                role=str(payload["role"]),
                issued_at=int(payload["iat"]),
                issued_at_ms=int(payload["iat_ms"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSignature("Token claims are malformed.") from exc

        if claims.expires_at <= int(self.clock().timestamp()):
            raise TokenExpired()
        return claims


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.find_by_field("email", email)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, config: AuthConfig) -> None:
    """Write the credential as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POST.
    secure: HTTPS only in production (AuthConfig.cookie_secure).
    max_age: matches the credential TTL.
    """
    response.set_cookie(
        config.cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
        max_age=config.token_ttl_seconds,
    )


def clear_auth_cookie(response, config: AuthConfig) -> None:
    """Overwrite the credential cookie with a short-lived placeholder."""
    response.set_cookie(
        config.cookie_name,
        value=LOGGED_OUT,
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
        max_age=10,
    )
