"""
auth/reset.py -- One-time password-reset secrets.

A reset secret is secrets.token_hex(32) -- 256 bits of entropy, handed to the
user once inside the reset link. The store only ever sees its fingerprint,
HMAC-SHA256(SECRET_KEY, secret), plus an absolute expiry. The fingerprint is
deterministic, so the reset route finds the identity by fingerprint lookup.

validate() collapses every failure (no stored reset, wrong secret, expired
secret) into the same InvalidOrExpired error with the same message.

Persisting and clearing the fields is the caller's job (auth/passwords.py).

Layer rule: no imports from api/ or mail/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import InvalidOrExpired
from auth.models import ResetSecret
from auth.tokens import utcnow
from core.config import AuthConfig


class ResetSecretManager:
    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = utcnow) -> None:
        self.config = config
        self.clock = clock

    @property
    def window_minutes(self) -> int:
        return max(1, self.config.reset_ttl_seconds // 60)

    def fingerprint(self, plain: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, plain) as a hex string."""
        return hmac.new(
            self.config.secret_key.encode(),
            plain.encode(),
            hashlib.sha256,
        ).hexdigest()

    def generate(self) -> ResetSecret:
        plain = secrets.token_hex(32)
        return ResetSecret(
            plain=plain,
            fingerprint=self.fingerprint(plain),
            expires_at=self.clock() + timedelta(seconds=self.config.reset_ttl_seconds),
        )

    def validate(
        self,
        presented: str,
        stored_fingerprint: str | None,
        stored_expires_at: datetime | None,
    ) -> None:
        """Raise InvalidOrExpired unless presented matches and the expiry is strictly in the future."""
        if not stored_fingerprint or stored_expires_at is None:
            raise InvalidOrExpired()
        matches = hmac.compare_digest(self.fingerprint(presented), stored_fingerprint)
        live = stored_expires_at > self.clock()
        if not (matches and live):
            raise InvalidOrExpired()
