"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Quillpost happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET).

  DatabaseSettings: the subset needed by tools that only touch the database
      (the admin CLI in main.py). It never requires JWT_SECRET, so an operator
      can promote an admin on a host that does not hold the signing secret.

Security notes:
  A missing JWT_SECRET is a hard startup failure. Settings() raises, the
  lifespan never completes, and the server refuses to serve requests. DEBUG=true
  opts into an auto-generated secret for local development only.

  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy -- a short key weakens every issued session token.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or posts/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("quillpost.config")

SEVEN_DAYS_SECONDS = 7 * 24 * 60 * 60

DEFAULT_DATABASE_URL = "sqlite:///quillpost.db"


class DatabaseSettings(BaseSettings):
    """Database connection settings. Safe to construct without any secrets."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = DEFAULT_DATABASE_URL


class Settings(DatabaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except jwt_secret has a default so the service can boot
    locally with only JWT_SECRET (or DEBUG=true) set. The model_validator
    enforces the signing secret policy at startup.
    """

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    jwt_secret: str = ""

    # ------------------------------------------------------------------
    # Session token delivery
    # ------------------------------------------------------------------

    token_expire_seconds: int = SEVEN_DAYS_SECONDS
    # "fragment": redirect to FRONTEND_REDIRECT_URL#token=<jwt>
    # "cookie":   set httpOnly cookie "token" and redirect without the token
    token_delivery: Literal["fragment", "cookie"] = "fragment"
    secure_cookies: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # ------------------------------------------------------------------
    # Google OAuth
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_url: str = "http://localhost:3000/oauth"
    frontend_redirect_url: str = "http://localhost:5173"
    oauth_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    posts_page_size: int = Field(default=10, gt=0)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Enforce the JWT_SECRET policy.

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Session tokens will not survive a restart.

        Production mode (DEBUG=false or not set): refuse to start if
            JWT_SECRET is missing.

        Both modes: reject secrets shorter than 32 characters.
        """
        if not self.jwt_secret:
            if self.debug:
                self.jwt_secret = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated JWT_SECRET. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "JWT_SECRET is required. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
