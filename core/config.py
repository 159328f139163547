"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for NutriTrack happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, access_token_ttl -> ACCESS_TOKEN_TTL).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. A missing signing secret outside debug mode is a startup
      failure, never a per-request one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the refresh-token HMAC both rely on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. There is no hard-coded fallback key.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("nutritrack.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'nutritrack_auth.db'}"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}

MIN_BCRYPT_ROUNDS = 10
MAX_BCRYPT_ROUNDS = 20


def parse_duration(value: str | int) -> timedelta:
    """Convert a duration like "15m", "7d", "3600s" (or bare seconds) to a timedelta.

    Raises ValueError for anything else, including zero or negative durations.
    """
    if isinstance(value, int):
        seconds = value
    else:
        text = str(value).strip()
        if text.isdigit():
            seconds = int(text)
        else:
            match = _DURATION_RE.match(text)
            if match is None:
                raise ValueError(f"Invalid duration {value!r}; expected e.g. '15m', '7d', '3600s'.")
            amount, unit = match.groups()
            return _positive(timedelta(**{_DURATION_UNITS[unit]: int(amount)}), value)
    return _positive(timedelta(seconds=seconds), value)


def _positive(delta: timedelta, raw: str | int) -> timedelta:
    if delta.total_seconds() <= 0:
        raise ValueError(f"Duration must be positive, got {raw!r}.")
    return delta


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true). The
    model_validator enforces production-safety rules at startup.
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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Token lifetimes
    # ------------------------------------------------------------------

    access_token_ttl: str = "15m"
    refresh_token_ttl: str = "7d"

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=MIN_BCRYPT_ROUNDS, le=MAX_BCRYPT_ROUNDS)

    # ------------------------------------------------------------------
    # Sessions and HTTP
    # ------------------------------------------------------------------

    session_sweep_interval_seconds: int = Field(default=3600, gt=0)
    login_rate_limit: str = "5/minute"
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("access_token_ttl", "refresh_token_ttl")
    @classmethod
    def validate_ttl(cls, value: str) -> str:
        """Reject malformed durations at startup rather than on first login."""
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and access tokens do not survive restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def access_token_lifetime(self) -> timedelta:
        return parse_duration(self.access_token_ttl)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return parse_duration(self.refresh_token_ttl)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
