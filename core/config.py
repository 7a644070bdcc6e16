"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuthGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  AuthConfig: a frozen dataclass carved out of Settings once at startup and
      handed to TokenCodec and ResetSecretManager through their constructors.
      The codec and the reset manager never look settings up at call time.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  reset-secret HMAC both rely on key entropy.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or mail/.
"""

import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authgate.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///authgate.db"
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # 90 days. The cookie max-age always equals this value.
    token_expire_seconds: int = 90 * 24 * 3600
    reset_token_expire_seconds: int = 10 * 60
    # None = follow production mode (secure unless DEBUG=true).
    secure_cookies: bool | None = None

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    forgot_password_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Credentials will not survive restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Credentials will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.token_expire_seconds <= 0 or self.reset_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self

    @property
    def cookie_secure(self) -> bool:
        if self.secure_cookies is not None:
            return self.secure_cookies
        return not self.debug


@dataclass(frozen=True)
class AuthConfig:
    """Immutable credential configuration injected into the codec and reset manager."""

    secret_key: str
    token_ttl_seconds: int
    reset_ttl_seconds: int = 600
    cookie_name: str = "jwt"
    cookie_secure: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            secret_key=settings.secret_key,
            token_ttl_seconds=settings.token_expire_seconds,
            reset_ttl_seconds=settings.reset_token_expire_seconds,
            cookie_secure=settings.cookie_secure,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
