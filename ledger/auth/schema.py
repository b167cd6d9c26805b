"""
Auth database schema initialization.

IMPORTANT: initialize() should ONLY be called by:
- ledger/app.py at startup
- scripts/create_admin.py
- Test fixtures

Never call schema initialization from feature code (routes, services).
"""
import logging

from core.db import DatabaseManager, adapt_schema_sql

logger = logging.getLogger(__name__)

_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL DEFAULT '',
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT,
        google_id TEXT UNIQUE,
        roles TEXT NOT NULL DEFAULT 'USER',
        is_active INTEGER NOT NULL DEFAULT 1,
        totp_secret TEXT,
        totp_enabled INTEGER NOT NULL DEFAULT 0,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS oauth_states (
        id TEXT PRIMARY KEY,
        state TEXT UNIQUE NOT NULL,
        provider TEXT NOT NULL,
        ip_hash TEXT NOT NULL DEFAULT '',
        user_agent_hash TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        used_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mfa_settings (
        id INTEGER PRIMARY KEY,
        enforce_2fa INTEGER NOT NULL DEFAULT 0,
        updated_by INTEGER,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mfa_backup_codes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        code_hash TEXT NOT NULL,
        created_at TEXT NOT NULL,
        used_at TEXT,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
    """,
]

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_mfa_backup_codes_user_id ON mfa_backup_codes(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_oauth_states_expires_at ON oauth_states(expires_at)",
]


def initialize(db: DatabaseManager) -> None:
    """Create all auth tables and indexes if they don't exist."""
    with db.connect() as conn:
        cursor = conn.cursor()
        for ddl in _TABLES:
            cursor.execute(adapt_schema_sql(ddl, db.db_url))
        for ddl in _INDEXES:
            cursor.execute(ddl)
    logger.info("Auth schema initialized")
