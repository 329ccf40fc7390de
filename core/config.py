"""
core/config.py -- OTPGate settings, read once from the environment.

Nothing else in the tree touches os.environ; callers go through
get_settings().

How it is put together:
  get_settings() is wrapped in lru_cache, so the process holds a single
      Settings object. Both keys are parsed at startup and reused for every
      request.

  Settings extends pydantic-settings BaseSettings. Each field is filled from
      the upper-cased env var of the same name (encryption_key <- ENCRYPTION_KEY),
      falling back to a .env file in the working directory.

  validate_keys runs after field parsing. With DEBUG on, missing keys are
      generated; with DEBUG off, they stop the process.

Security notes:
  SECRET_KEY signs session credentials (HS256). Shorter than 32 chars is
  rejected outright.

  ENCRYPTION_KEY is the AES-256 key for verification tokens, given as 64 hex
  characters. Any other length is rejected at startup so a bad key can never
  reach the codec.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or verification/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("otpgate.config")

_ENCRYPTION_KEY_HEX_LEN = 64


class Settings(BaseSettings):
    """Environment-backed settings for the API, the CLI and the purge task.

    Every field has a default, so with DEBUG=true a bare Settings() works
    without any .env file. validate_keys decides what is fatal.
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
    app_name: str = "OTPGate"
    log_level: str = "INFO"
    database_url: str = "sqlite:///otpgate.db"
    # Front-end base URL; verification and reset links are built from it.
    client_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Keys (empty string = not configured, see validate_keys)
    # ------------------------------------------------------------------

    secret_key: str = ""
    encryption_key: str = ""

    # ------------------------------------------------------------------
    # Hashing and token lifetimes
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    otp_length: int = Field(default=6, ge=4, le=10)
    otp_expire_seconds: int = Field(default=600, gt=0)
    reset_expire_seconds: int = Field(default=600, gt=0)
    # 0 disables the exp claim (unbounded sessions).
    session_expire_seconds: int = Field(default=7 * 24 * 3600, ge=0)

    # ------------------------------------------------------------------
    # Outbound email
    # ------------------------------------------------------------------

    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str = ""
    email_from: str = "OTPGate <no-reply@localhost>"
    email_timeout_seconds: float = Field(default=10.0, gt=0)
    email_send_attempts: int = Field(default=3, ge=1)
    email_retry_backoff_seconds: float = Field(default=1.0, ge=0)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    # Background sweep of expired OTP / reset rows. 0 = disabled; the sweep
    # can still be triggered via `python main.py purge` or the admin route.
    purge_interval_seconds: int = Field(default=0, ge=0)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Enforce the key policy.

        Dev mode (DEBUG=true): auto-generate SECRET_KEY and ENCRYPTION_KEY
            with a warning. Sessions and pending tokens do not survive a
            restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY, ENCRYPTION_KEY or
            EMAIL_API_KEY is missing.

        Both modes: SECRET_KEY must be at least 32 characters and
            ENCRYPTION_KEY must be exactly 64 hex characters (32 bytes).
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError("SECRET_KEY is not set. Provide at least 32 characters, or set DEBUG=true for local runs.")
            self.secret_key = secrets.token_hex(32)
            logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if not self.encryption_key:
            if not self.debug:
                raise ValueError("ENCRYPTION_KEY is required in production mode (64 hex characters).")
            self.encryption_key = secrets.token_hex(32)
            logger.warning("Using auto-generated ENCRYPTION_KEY. Pending OTP and reset links die on restart.")
        if len(self.encryption_key) != _ENCRYPTION_KEY_HEX_LEN:
            raise ValueError("ENCRYPTION_KEY must be exactly 64 hex characters (32 bytes).")
        try:
            bytes.fromhex(self.encryption_key)
        except ValueError as exc:
            raise ValueError("ENCRYPTION_KEY must be hex encoded.") from exc

        if not self.email_api_key and not self.debug:
            raise ValueError("EMAIL_API_KEY is required in production mode.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings.

    Tests that change env vars must call get_settings.cache_clear() first.
    """
    return Settings()
