"""
Auth domain types - no dependencies on other auth modules.

Nullable timestamps (``used_at``) are ``Optional[datetime]``: ``None`` means
"has not happened yet".
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TokenPurpose(str, Enum):
    """Purpose tag carried by temp tokens."""
    SETUP = "setup"
    VERIFY = "verify"


@dataclass
class User:
    """User identity and credential material (TOTP secret decrypted)."""
    id: int
    email: str
    name: str = ""
    password_hash: Optional[str] = None
    google_id: Optional[str] = None
    roles: tuple[str, ...] = ()
    is_active: bool = True
    totp_secret: Optional[str] = None
    totp_enabled: bool = False

    @property
    def has_totp_secret(self) -> bool:
        return bool(self.totp_secret)

    @property
    def is_admin(self) -> bool:
        return "ADMIN" in self.roles


@dataclass(frozen=True)
class OauthState:
    """Persisted CSRF/replay guard for one authorization request."""
    id: str
    state: str
    provider: str
    ip_hash: str
    user_agent_hash: str
    created_at: datetime
    expires_at: datetime
    used_at: Optional[datetime] = None


@dataclass(frozen=True)
class MFASettings:
    """System-wide 2FA policy (singleton row)."""
    enforce_2fa: bool = False
    updated_by: Optional[int] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class MFABackupCode:
    id: int
    user_id: int
    code_hash: str
    created_at: datetime
    used_at: Optional[datetime] = None


@dataclass(frozen=True)
class FullClaims:
    """Decoded session token."""
    user_id: int
    email: str
    name: str
    roles: tuple[str, ...]
    exp: datetime
    iat: datetime


@dataclass(frozen=True)
class TempClaims:
    """Decoded purpose-scoped temp token."""
    user_id: int
    email: str
    purpose: TokenPurpose
    exp: datetime
    iat: datetime


@dataclass(frozen=True)
class ProviderProfile:
    """Remote identity returned by the OAuth provider."""
    id: str
    email: str
    name: str = ""


@dataclass(frozen=True)
class TOTPProvisioning:
    """Output of secret generation, shown to the user once during setup."""
    secret: str
    provisioning_uri: str
    qr_code: str  # data:image/png;base64,...


@dataclass
class LoginResult:
    """Outcome of a login attempt, serialized as the /login response body."""
    token: Optional[str] = None
    temp_token: Optional[str] = None
    purpose: Optional[TokenPurpose] = None
    requires_2fa_setup: bool = False

    @property
    def requires_2fa(self) -> bool:
        return self.temp_token is not None

    def to_dict(self) -> dict:
        if self.requires_2fa:
            return {
                "requires_2fa": True,
                "temp_token": self.temp_token,
                "purpose": self.purpose.value,
            }
        body = {"token": self.token}
        if self.requires_2fa_setup:
            body["requires_2fa_setup"] = True
        return body
