"""
Auth service configuration, loaded from the environment (and ``.env``).

Settings are grouped: ``auth`` (tokens, TOTP, backup codes, password
policy, external delegate), ``oauth`` (Google client, ``GOOGLE_`` prefix)
and ``database``. Loading fails fast when JWT_SECRET is missing, except
in TESTING mode where a fixed development key is used.

    from config.settings import get_settings

    ttl = get_settings().auth.temp_token_expiration_minutes

The result is cached; tests call ``get_settings.cache_clear()``.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings

_TESTING_JWT_SECRET = "testing-only-jwt-secret-not-for-production"


def _is_testing() -> bool:
    flag = os.getenv("TESTING", "").lower()
    return flag in ("true", "1") or os.getenv("FLASK_ENV") == "testing"


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """Token, TOTP, backup code and password policy configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    jwt_secret: SecretStr = SecretStr("")
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24
    temp_token_expiration_minutes: int = 5

    # OAuth state tokens
    oauth_state_ttl_minutes: int = 10

    # TOTP
    totp_issuer: str = "CashBook"
    totp_valid_window: int = 1
    totp_encryption_key: SecretStr = SecretStr("")

    # Backup codes
    backup_code_count: int = 10

    # External credential delegate (disabled when empty)
    client_auth_url: str = ""
    client_auth_timeout_seconds: float = 5.0

    # Password policy
    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True


class OAuthSettings(BaseSettings):
    """Google OAuth2 authorization-code flow configuration."""

    model_config = {"env_prefix": "GOOGLE_", "extra": "ignore"}

    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    redirect_url: str = ""
    timeout_seconds: float = 10.0


class DatabaseSettings(BaseSettings):
    """PostgreSQL URL or SQLite file for the auth tables."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    database_url: Optional[str] = None
    db_path: Optional[Path] = None

    @property
    def sqlite_path(self) -> Path:
        """SQLite file used when no PostgreSQL URL is configured."""
        if self.db_path is not None:
            return self.db_path
        return Path(__file__).parent.parent / "data" / "ledger.db"


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Top-level settings plus the nested groups."""

    model_config = {"env_prefix": "", "extra": "ignore", "env_file": ".env", "env_file_encoding": "utf-8"}

    app_name: str = "cashbook-auth"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Server
    frontend_url: str = "http://localhost:5173"
    cors_origins: str = ""

    auth: AuthSettings = None  # type: ignore[assignment]
    oauth: OAuthSettings = None  # type: ignore[assignment]
    database: DatabaseSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _init_nested(cls, values):
        """Groups read their own env prefixes."""
        for name, group in (("auth", AuthSettings), ("oauth", OAuthSettings), ("database", DatabaseSettings)):
            if values.get(name) is None:
                values[name] = group()
        return values

    @model_validator(mode="after")
    def _validate_required_secrets(self):
        """Require JWT_SECRET in production; fall back to a fixed key only in TESTING mode."""
        if self.auth.jwt_secret.get_secret_value():
            return self

        if _is_testing():
            self.auth.jwt_secret = SecretStr(_TESTING_JWT_SECRET)
            return self

        raise ValueError(
            "JWT_SECRET must be set outside TESTING mode "
            "(for example the output of secrets.token_hex(32))"
        )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Load settings once per process (until cache_clear)."""
    return AppSettings()
