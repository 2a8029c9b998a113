"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SocialHub happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or better, accept a Settings instance at construction time.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Only the
      application assembly (api/main.py, api/limiter.py) calls it; the auth
      core receives the Settings object explicitly.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Implements the DEBUG-conditional secret policy: dev mode
      generates random secrets with a warning, production refuses to start.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected outright.
  [M7] In production mode, a missing JWT_SECRET or REFRESH_TOKEN_SECRET is a
       hard startup failure.
  [M8] JWT_SECRET and REFRESH_TOKEN_SECRET must differ, otherwise an access
       token would verify as a refresh token.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("socialhub.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'socialhub_auth.db'}"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value) -> timedelta:
    """Parse "30s", "15m", "2h", "7d", a bare number of seconds, or a timedelta.

    Raises ValueError for anything else, including zero or negative values.
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value.lower())
        if match is None:
            raise ValueError(f"Invalid duration {value!r}; expected e.g. '30s', '15m', '2h', '7d'")
        seconds = float(int(match.group(1)) * _DURATION_UNITS[match.group(2)])
    else:
        raise ValueError(f"Invalid duration {value!r}")
    if seconds <= 0:
        raise ValueError("Duration must be positive")
    return timedelta(seconds=seconds)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (provided DEBUG=true or the two
    secrets are supplied).
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
    database_url: str = _DEFAULT_DB_URL
    # Comma-separated origins; "*" allows any origin.
    cors_whitelist: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    jwt_secret: str = ""
    refresh_token_secret: str = ""
    jwt_expiry: timedelta = timedelta(minutes=15)
    refresh_token_expiry: timedelta = timedelta(days=7)

    # ------------------------------------------------------------------
    # Credentials and lockout
    # ------------------------------------------------------------------

    password_min_length: int = 8
    bcrypt_rounds: int = 10
    lockout_threshold: int = 5
    lockout_duration: timedelta = timedelta(hours=2)
    refresh_token_capacity: int = 5

    # ------------------------------------------------------------------
    # Rate limiting (per client IP, slowapi syntax)
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    register_rate_limit: str = "3/hour"
    login_rate_limit: str = "5/15minutes"
    refresh_rate_limit: str = "10/15minutes"
    logout_rate_limit: str = "20/15minutes"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_expiry", "refresh_token_expiry", "lockout_duration", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        return parse_duration(value)

    @field_validator("lockout_threshold", "refresh_token_capacity", "password_min_length")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("bcrypt_rounds")
    @classmethod
    def _bcrypt_rounds_range(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return value

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the token secret policy [M6][M7][M8].

        Dev mode (DEBUG=true): auto-generate each missing secret with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing.

        Both modes: reject secrets shorter than 32 characters and reject a
            configuration where both secrets are identical.
        """
        for name in ("jwt_secret", "refresh_token_secret"):
            if getattr(self, name):
                continue
            if self.debug:
                setattr(self, name, secrets.token_hex(32))
                logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())
            else:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < 32 or len(self.refresh_token_secret) < 32:
            raise ValueError("JWT_SECRET and REFRESH_TOKEN_SECRET must be at least 32 characters.")
        if self.jwt_secret == self.refresh_token_secret:
            raise ValueError("JWT_SECRET and REFRESH_TOKEN_SECRET must differ.")
        return self

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_whitelist.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
