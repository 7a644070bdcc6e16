"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own domain shape; the store, codec and
orchestrator do the work.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"
    secretary = "secretary"
    superadmin = "superadmin"


@dataclass
class User:
    """An identity record, owned by the identity store.

    hashed_password is a bcrypt hash; the plaintext is never kept.
    password_changed_at moves forward on every password commit. Any credential
    whose issued-at precedes it is stale.

    password_reset_token holds the fingerprint of the outstanding reset secret,
    never the secret itself. It and password_reset_expires are set together and
    cleared together.
    """

    email: str
    role: Role = Role.user
    id: int | None = None
    name: str | None = None
    hashed_password: str | None = None
    password_changed_at: datetime | None = None
    password_reset_token: str | None = None  # fingerprint, never the raw secret
    password_reset_expires: datetime | None = None
    created_at: datetime | None = None
    is_active: bool = True

    @property
    def has_active_reset(self) -> bool:
        return self.password_reset_token is not None

    def clear_password_reset(self) -> None:
        """Drop the reset fingerprint and expiry. Safe to call repeatedly."""
        self.password_reset_token = None
        self.password_reset_expires = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified claim set of a bearer credential."""

    id: int
    email: str
    role: str
    issued_at: int  # seconds since epoch
    issued_at_ms: int  # milliseconds since epoch
    expires_at: int


@dataclass(frozen=True)
class ResetSecret:
    """A freshly generated reset secret.

    plain goes to the user exactly once (by mail). Only fingerprint and
    expires_at are persisted.
    """

    plain: str
    fingerprint: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"ResetSecret(fingerprint={self.fingerprint[:8]}..., expires_at={self.expires_at.isoformat()})"
