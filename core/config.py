"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the store ratings service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

How it works:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): values come from the process environment
      first, then an optional .env file. Each field maps to an upper-case env var
      (e.g. secret_key -> SECRET_KEY, database_url -> DATABASE_URL).

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY logic. Dev mode
      generates a key with a warning, production mode refuses to start without
      one. Page-size bounds are cross-checked here as well.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or catalog/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("storeratings.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'storeratings.db'}"


class Settings(BaseSettings):
    """Runtime configuration for the API, the CLI and the test suite.

    Every field has a default, so Settings() works in test
    runs with no .env file present.
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
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    default_page_limit: int = 10
    max_page_limit: int = 100

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://localhost:5173"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
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
        return self

    @model_validator(mode="after")
    def validate_page_limits(self) -> "Settings":
        if self.max_page_limit < 1:
            raise ValueError("MAX_PAGE_LIMIT must be at least 1.")
        if not 1 <= self.default_page_limit <= self.max_page_limit:
            raise ValueError("DEFAULT_PAGE_LIMIT must be between 1 and MAX_PAGE_LIMIT.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance, built on first use.

    Call get_settings.cache_clear() to pick up changed environment variables
    (tests only).
    """
    return Settings()
