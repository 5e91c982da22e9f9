"""
core/config.py -- GeoGuard settings, loaded once from the environment.

Every tunable lives on Settings; nothing else in the tree reads os.environ.
Field names map one-to-one to upper-case env vars (allowed_radius ->
ALLOWED_RADIUS) and a local .env file is honoured when present.

get_settings() is lru_cached, so the process shares one Settings object.
Tests that need different values set env vars before the first import or
call get_settings.cache_clear().

SECRET_KEY signs every session token. With DEBUG=true a throwaway key is
generated (sessions die with the process); otherwise startup fails without
one. Keys under 32 characters are refused in both modes.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or client/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("geoguard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'geoguard.db'}"


class Settings(BaseSettings):
    """Environment-backed configuration. Every field has a usable default except SECRET_KEY."""

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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions and geofence
    # ------------------------------------------------------------------

    # Token and session row share one lifetime: 7 days from issuance.
    session_ttl_seconds: int = 7 * 24 * 3600
    session_purge_interval_seconds: int = 3600
    # Fallback radius (meters) for accounts that register a center but no radius.
    allowed_radius: float = 100.0

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Resolve or reject SECRET_KEY, then range-check the geofence default."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.allowed_radius <= 0:
            raise ValueError("ALLOWED_RADIUS must be a positive number of meters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, building it on first use."""
    return Settings()
