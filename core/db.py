"""
Connection management for the auth store.

SQLite is the default backend; a ``postgres://`` / ``postgresql://`` URL
switches to psycopg2. Callers write SQL with ``?`` placeholders and read
rows by column name regardless of backend.

Usage:
    from core.db import DatabaseManager

    db = DatabaseManager(db_path=Path("data/ledger.db"))
    with db.connect() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (1,)).fetchone()

Single-use artifacts are claimed with conditional UPDATEs whose
``rowcount`` tells the caller whether it won the race.
"""

import logging
import queue
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT = 30
DEFAULT_SQLITE_PATH = Path("data") / "ledger.db"

_AUTOINCREMENT_PK = re.compile(r'INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT', re.IGNORECASE)


def is_postgres(db_url: Optional[str] = None) -> bool:
    return bool(db_url) and db_url.split("://", 1)[0] in ("postgres", "postgresql")


def adapt_schema_sql(sql: str, db_url: Optional[str] = None) -> str:
    """Rewrite SQLite DDL for PostgreSQL (auto-increment keys become SERIAL)."""
    if is_postgres(db_url):
        return _AUTOINCREMENT_PK.sub('SERIAL PRIMARY KEY', sql)
    return sql


# =============================================================================
# psycopg2 adapters
# =============================================================================

class _CompatCursor:
    """psycopg2 cursor speaking ``?`` placeholders.

    Plain INSERTs get ``RETURNING id`` so ``lastrowid`` behaves as in sqlite3.
    """

    def __init__(self, cursor):
        self._cursor = cursor
        self._inserted_id = None

    def execute(self, sql, params=None):
        sql = sql.replace("?", "%s")
        self._inserted_id = None
        head = sql.lstrip().upper()
        if head.startswith("INSERT") and "RETURNING" not in head:
            self._cursor.execute(sql.rstrip().rstrip(";") + " RETURNING id", params)
            row = self._cursor.fetchone()
            self._inserted_id = row.get("id") if row else None
        else:
            self._cursor.execute(sql, params)
        return self

    def fetchone(self):
        return self._cursor.fetchone()

    def fetchall(self):
        return self._cursor.fetchall()

    @property
    def lastrowid(self):
        return self._inserted_id

    @property
    def rowcount(self):
        return self._cursor.rowcount

    def close(self):
        self._cursor.close()


class _CompatConnection:
    """psycopg2 connection exposing the subset of sqlite3 used by repositories."""

    def __init__(self, raw):
        self.raw = raw

    def cursor(self):
        from psycopg2.extras import RealDictCursor
        return _CompatCursor(self.raw.cursor(cursor_factory=RealDictCursor))

    def execute(self, sql, params=None):
        return self.cursor().execute(sql, params)

    def commit(self):
        self.raw.commit()

    def rollback(self):
        self.raw.rollback()


# =============================================================================
# Manager
# =============================================================================

class DatabaseManager:
    """
    Pooled connections to one database.

    SQLite files run in WAL mode with foreign keys enforced and a busy
    timeout, so concurrent writers queue instead of failing immediately.
    """

    _default: Optional["DatabaseManager"] = None
    _default_lock = threading.Lock()

    def __init__(
        self,
        db_url: Optional[str] = None,
        db_path: Optional[Path] = None,
        pool_size: int = 10,
    ):
        self._db_url = db_url
        self._db_path = Path(db_path) if db_path else DEFAULT_SQLITE_PATH
        self._use_postgres = is_postgres(db_url)
        self._idle: queue.Queue = queue.Queue(maxsize=pool_size)
        self._pg_pool = None

        if self._use_postgres:
            try:
                from psycopg2.pool import ThreadedConnectionPool
            except ImportError as e:
                raise ImportError("PostgreSQL support needs psycopg2: pip install psycopg2-binary") from e
            self._pg_pool = ThreadedConnectionPool(minconn=1, maxconn=pool_size, dsn=db_url)
            logger.info("Using PostgreSQL auth store")
        else:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Using SQLite auth store at {self._db_path}")

    @classmethod
    def get_instance(cls, db_url: Optional[str] = None, db_path: Optional[Path] = None) -> "DatabaseManager":
        """Process-wide manager, created on first use."""
        with cls._default_lock:
            if cls._default is None:
                cls._default = cls(db_url=db_url, db_path=db_path)
            return cls._default

    @classmethod
    def reset(cls):
        """Close and forget the process-wide manager (tests)."""
        with cls._default_lock:
            if cls._default is not None:
                cls._default.close()
            cls._default = None

    def _open_sqlite(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=SQLITE_BUSY_TIMEOUT, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _acquire(self):
        if self._use_postgres:
            raw = self._pg_pool.getconn()
            raw.autocommit = False
            return _CompatConnection(raw)
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            return self._open_sqlite()

    def _release(self, conn):
        if self._use_postgres:
            self._pg_pool.putconn(conn.raw)
            return
        try:
            self._idle.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connect(self):
        """One transaction: commit when the block exits cleanly, else roll back."""
        conn = self._acquire()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release(conn)

    def close(self):
        while True:
            try:
                self._idle.get_nowait().close()
            except queue.Empty:
                break
        if self._pg_pool is not None:
            self._pg_pool.closeall()
            self._pg_pool = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def db_url(self) -> Optional[str]:
        return self._db_url

    @property
    def is_postgres(self) -> bool:
        return self._use_postgres
