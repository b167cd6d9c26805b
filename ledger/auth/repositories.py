"""
Persistence for the auth subsystem.

One repository per table. All writes that guard a one-time artifact
(``oauth_states.used_at``, ``mfa_backup_codes.used_at``) are conditional
UPDATEs that only succeed while the row is still unused; the returned
bool tells the caller whether it won.

Storage failures are wrapped in ``InternalError``.
"""
import functools
import logging
from datetime import datetime
from typing import Iterable, Optional

from cryptography.fernet import InvalidToken

from core.db import DatabaseManager
from core.errors import InternalError
from core.timestamps import isonow, parse_timestamp, to_iso

from .encryption import SecretCipher
from .types import MFABackupCode, MFASettings, OauthState, User

logger = logging.getLogger(__name__)

_MFA_SETTINGS_ID = 1


def _storage_errors(f):
    """Wrap driver exceptions so callers only see InternalError."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except InternalError:
            raise
        except Exception as e:
            logger.exception(f"Storage failure in {f.__qualname__}")
            raise InternalError(f"storage failure in {f.__qualname__}", cause=e) from e
    return wrapper


def _split_roles(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(r.strip() for r in value.split(",") if r.strip())


# =============================================================================
# Users
# =============================================================================

class UserRepository:
    """Users table, with the TOTP secret encrypted at rest."""

    def __init__(self, db: DatabaseManager, cipher: SecretCipher):
        self._db = db
        self._cipher = cipher

    def _row_to_user(self, row) -> User:
        secret = None
        if row["totp_secret"]:
            try:
                secret = self._cipher.decrypt(row["totp_secret"])
            except InvalidToken as e:
                raise InternalError(f"cannot decrypt TOTP secret for user {row['id']}", cause=e) from e
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"] or "",
            password_hash=row["password_hash"],
            google_id=row["google_id"],
            roles=_split_roles(row["roles"]),
            is_active=bool(row["is_active"]),
            totp_secret=secret,
            totp_enabled=bool(row["totp_enabled"]),
        )

    def _find_one(self, where: str, value) -> Optional[User]:
        with self._db.connect() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT * FROM users WHERE {where} = ?", (value,))
            row = cursor.fetchone()
        return self._row_to_user(row) if row else None

    @_storage_errors
    def find_by_id(self, user_id: int) -> Optional[User]:
        return self._find_one("id", user_id)

    @_storage_errors
    def find_by_email(self, email: str) -> Optional[User]:
        return self._find_one("email", email.strip().lower())

    @_storage_errors
    def find_by_google_id(self, google_id: str) -> Optional[User]:
        return self._find_one("google_id", google_id)

    @_storage_errors
    def create(
        self,
        email: str,
        name: str = "",
        password_hash: Optional[str] = None,
        roles: Iterable[str] = ("USER",),
        is_active: bool = True,
        google_id: Optional[str] = None,
    ) -> User:
        with self._db.connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO users (name, email, password_hash, google_id, roles, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    name,
                    email.strip().lower(),
                    password_hash,
                    google_id,
                    ",".join(roles),
                    1 if is_active else 0,
                    isonow(),
                    isonow(),
                ),
            )
            user_id = cursor.lastrowid
        return self.find_by_id(user_id)

    @_storage_errors
    def link_google_id(self, user_id: int, google_id: str) -> None:
        """Attach a provider identity to an existing account and reactivate it."""
        with self._db.connect() as conn:
            conn.execute(
                "UPDATE users SET google_id = ?, is_active = 1, updated_at = ? WHERE id = ?",
                (google_id, isonow(), user_id),
            )

    @_storage_errors
    def set_totp_secret(self, user_id: int, secret: str) -> None:
        """Store a new (unconfirmed) secret. The enabled flag is left off."""
        with self._db.connect() as conn:
            conn.execute(
                "UPDATE users SET totp_secret = ?, totp_enabled = 0, updated_at = ? WHERE id = ?",
                (self._cipher.encrypt(secret), isonow(), user_id),
            )

    @_storage_errors
    def enable_totp(self, user_id: int) -> bool:
        """Flip the enabled flag; only succeeds while a secret is present."""
        with self._db.connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET totp_enabled = 1, updated_at = ? "
                "WHERE id = ? AND totp_secret IS NOT NULL AND totp_secret != ''",
                (isonow(), user_id),
            )
            return cursor.rowcount == 1

    @_storage_errors
    def disable_totp(self, user_id: int) -> None:
        """Clear secret and flag and purge backup codes in one transaction."""
        with self._db.connect() as conn:
            conn.execute(
                "UPDATE users SET totp_secret = NULL, totp_enabled = 0, updated_at = ? WHERE id = ?",
                (isonow(), user_id),
            )
            conn.execute("DELETE FROM mfa_backup_codes WHERE user_id = ?", (user_id,))


# =============================================================================
# OAuth States
# =============================================================================

def _row_to_state(row) -> OauthState:
    return OauthState(
        id=row["id"],
        state=row["state"],
        provider=row["provider"],
        ip_hash=row["ip_hash"] or "",
        user_agent_hash=row["user_agent_hash"] or "",
        created_at=parse_timestamp(row["created_at"]),
        expires_at=parse_timestamp(row["expires_at"]),
        used_at=parse_timestamp(row["used_at"]),
    )


class OauthStateRepository:

    def __init__(self, db: DatabaseManager):
        self._db = db

    @_storage_errors
    def save(self, state: OauthState) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_states (id, state, provider, ip_hash, user_agent_hash, created_at, expires_at, used_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    state.id,
                    state.state,
                    state.provider,
                    state.ip_hash,
                    state.user_agent_hash,
                    to_iso(state.created_at),
                    to_iso(state.expires_at),
                    to_iso(state.used_at),
                ),
            )

    @_storage_errors
    def find_by_state(self, state: str) -> Optional[OauthState]:
        with self._db.connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM oauth_states WHERE state = ?", (state,))
            row = cursor.fetchone()
        return _row_to_state(row) if row else None

    @_storage_errors
    def mark_used(self, state_id: str, when: datetime) -> bool:
        """Set used_at only if still NULL. Returns True for the single winner."""
        with self._db.connect() as conn:
            cursor = conn.execute(
                "UPDATE oauth_states SET used_at = ? WHERE id = ? AND used_at IS NULL",
                (to_iso(when), state_id),
            )
            return cursor.rowcount == 1


# =============================================================================
# Backup Codes
# =============================================================================

def _row_to_backup_code(row) -> MFABackupCode:
    return MFABackupCode(
        id=row["id"],
        user_id=row["user_id"],
        code_hash=row["code_hash"],
        created_at=parse_timestamp(row["created_at"]),
        used_at=parse_timestamp(row["used_at"]),
    )


class BackupCodeRepository:

    def __init__(self, db: DatabaseManager):
        self._db = db

    @_storage_errors
    def replace_batch(self, user_id: int, code_hashes: list[str], created_at: datetime) -> None:
        """Delete every existing code for the user and insert the new batch atomically."""
        with self._db.connect() as conn:
            conn.execute("DELETE FROM mfa_backup_codes WHERE user_id = ?", (user_id,))
            cursor = conn.cursor()
            for code_hash in code_hashes:
                cursor.execute(
                    "INSERT INTO mfa_backup_codes (user_id, code_hash, created_at) VALUES (?, ?, ?)",
                    (user_id, code_hash, to_iso(created_at)),
                )

    @_storage_errors
    def find_unused(self, user_id: int) -> list[MFABackupCode]:
        with self._db.connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM mfa_backup_codes WHERE user_id = ? AND used_at IS NULL ORDER BY id",
                (user_id,),
            )
            rows = cursor.fetchall()
        return [_row_to_backup_code(r) for r in rows]

    @_storage_errors
    def count_unused(self, user_id: int) -> int:
        return len(self.find_unused(user_id))

    @_storage_errors
    def mark_used(self, code_id: int, when: datetime) -> bool:
        """Set used_at only if still NULL. Returns True for the single winner."""
        with self._db.connect() as conn:
            cursor = conn.execute(
                "UPDATE mfa_backup_codes SET used_at = ? WHERE id = ? AND used_at IS NULL",
                (to_iso(when), code_id),
            )
            return cursor.rowcount == 1


# =============================================================================
# MFA Settings
# =============================================================================

class MFASettingsRepository:
    """Singleton policy row (id = 1). A missing row reads as not enforced."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    @_storage_errors
    def get(self) -> MFASettings:
        with self._db.connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM mfa_settings WHERE id = ?", (_MFA_SETTINGS_ID,))
            row = cursor.fetchone()
        if not row:
            return MFASettings()
        return MFASettings(
            enforce_2fa=bool(row["enforce_2fa"]),
            updated_by=row["updated_by"],
            updated_at=parse_timestamp(row["updated_at"]),
        )

    @_storage_errors
    def upsert(self, enforce_2fa: bool, updated_by: int, updated_at: datetime) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO mfa_settings (id, enforce_2fa, updated_by, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    enforce_2fa = excluded.enforce_2fa,
                    updated_by = excluded.updated_by,
                    updated_at = excluded.updated_at
                """,
                (_MFA_SETTINGS_ID, 1 if enforce_2fa else 0, updated_by, to_iso(updated_at)),
            )
