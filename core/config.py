"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  Duration fields (JWT_EXPIRES_IN, REFRESH_EXPIRES_IN) accept either a number
      of seconds or a short unit string such as "15m", "1h" or "7d", so the
      same .env file format as the front-end tooling can be reused.

Security notes:
  Secrets shorter than 32 chars are rejected outright. HS256 signing relies
  on key entropy -- a short key weakens every token the service issues.

  In production mode (DEBUG not set or false), a missing JWT_SECRET or
  REFRESH_SECRET is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authtemplate.config")

_DURATION_RE = re.compile(r"^(\d+)\s*([smhd]?)$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value) -> int:
    """Convert 3600, "3600", "60m", "1h" or "7d" into a number of seconds.

    Raises ValueError for anything else, including zero and negative values.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_RE.match(str(value).strip().lower())
        if not match:
            raise ValueError(f"Invalid duration: {value!r} (expected e.g. 3600, '15m', '1h', '7d')")
        seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}")
    return seconds


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    environment: str = "development"
    api_prefix: str = "/api/v1"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    jwt_secret: str = ""
    refresh_secret: str = ""
    jwt_expires_in: int = 3600
    refresh_expires_in: int = 7 * 86400

    bcrypt_rounds: int = 12

    password_reset_expire_seconds: int = 3600
    # Front-end page that receives ?token=... -- empty means derive from the request
    password_reset_url: str = ""

    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    storage_backend: Literal["sql", "memory"] = "sql"
    database_url: str = "sqlite:///./authtemplate.db"

    # ------------------------------------------------------------------
    # OAuth providers (disabled unless toggled on AND credentials are set)
    # ------------------------------------------------------------------

    enable_github: bool = False
    github_client_id: str = ""
    github_client_secret: str = ""
    github_callback_url: str = ""

    enable_google: bool = False
    google_client_id: str = ""
    google_client_secret: str = ""
    google_callback_url: str = ""

    enable_facebook: bool = False
    facebook_client_id: str = ""
    facebook_client_secret: str = ""
    facebook_callback_url: str = ""

    # ------------------------------------------------------------------
    # Email (empty host disables outgoing mail)
    # ------------------------------------------------------------------

    email_host: str = ""
    email_port: int = 587
    email_secure: bool = False
    email_user: str = ""
    email_pass: str = ""
    email_from: str = "noreply@example.com"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    auth_rate_limit: str = "100 per 15 minutes"
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_expires_in", "refresh_expires_in", "password_reset_expire_seconds", mode="before")
    @classmethod
    def validate_duration(cls, value):
        return parse_duration(value)

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return value

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-key policy.

        Dev mode (DEBUG=true): auto-generate random keys with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start if either key is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        for name in ("jwt_secret", "refresh_secret"):
            value = getattr(self, name)
            if not value:
                if self.debug:
                    setattr(self, name, secrets.token_hex(32))
                    logger.warning(
                        "WARNING: Using auto-generated %s. Issued tokens will not persist across restarts.",
                        name.upper(),
                    )
                else:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            elif len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        if self.jwt_secret == self.refresh_secret:
            logger.warning("JWT_SECRET and REFRESH_SECRET are identical; use distinct keys.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
