"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for credgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. otp_ttl_seconds -> OTP_TTL_SECONDS). Type coercion and validation
      are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  A SECRET_KEY shorter than 32 bytes is accepted but logged. auth.tokens pads
  it to the HS256 minimum before signing, so the signing key is never shorter
  than 256 bits.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
  hard startup failure. Tokens signed with a random per-process key would be
  rejected after every restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("credgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'credgate_auth.db'}"

# Minimum HS256 key length in bytes (256 bits).
MIN_SECRET_BYTES = 32


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # CAPTCHA / OTP lifetimes
    # ------------------------------------------------------------------

    captcha_ttl_seconds: int = Field(default=600, gt=0)
    otp_ttl_seconds: int = Field(default=300, gt=0)
    otp_length: int = Field(default=6, ge=4, le=10)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = Field(default=3600, gt=0)
    refresh_token_expire_seconds: int = Field(default=604800, gt=0)

    # ------------------------------------------------------------------
    # Background reclamation of expired challenges and passcodes
    # ------------------------------------------------------------------

    reclaim_interval_seconds: int = Field(default=3600, gt=0)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    # OTP issuance cap per (contact, role). Off by default; the counting query
    # stays available so switching it on needs no schema change.
    otp_rate_limit_enabled: bool = False
    otp_rate_limit_max: int = Field(default=3, gt=0)
    otp_rate_limit_window_seconds: int = Field(default=900, gt=0)

    # ------------------------------------------------------------------
    # SMS delivery (empty gateway URL means "log only")
    # ------------------------------------------------------------------

    sms_gateway_url: str = ""
    sms_gateway_token: str = ""
    sms_sender_id: str = "CREDGT"
    sms_timeout_seconds: float = Field(default=10.0, gt=0)
    notify_workers: int = Field(default=2, gt=0)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: keys shorter than 32 bytes are padded at signing time.
            Warn so operators know the configured entropy is below the minimum.
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
        if len(self.secret_key.encode("utf-8")) < MIN_SECRET_BYTES:
            logger.warning(
                "SECRET_KEY is shorter than %d bytes; it will be padded before use.",
                MIN_SECRET_BYTES,
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
