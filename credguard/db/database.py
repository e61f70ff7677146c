"""
SQLite Vault Database
=====================

Connection and transaction handling shared by the credential, history,
rotation and settings stores.

Security Considerations:
- Secret columns only ever hold envelopes
- All statements use parameterized queries
- Multi-store mutations run inside one IMMEDIATE transaction
- WAL journal, so readers never wait on an open writer
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Final, Iterator, Optional

from credguard.core.errors import StorageBusyError
from credguard.core.logging import get_secure_logger

logger = get_secure_logger(__name__)


class VaultDatabase:
    """
    SQLite backend for the credential core.

    Usage:
        db = VaultDatabase(config.paths.database_path)

        # Plain reads, no lock held
        with db.reader() as conn:
            conn.execute("SELECT ...")

        # Single write (own short transaction)
        with db.connection() as conn:
            conn.execute(...)

        # Several stores, all or nothing
        with db.transaction() as conn:
            history.append(..., conn=conn)
            credentials.update_secret(..., conn=conn)
    """

    __slots__ = ("_db_path", "_busy_timeout")

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS rotation_policies (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        rotation_days INTEGER NOT NULL CHECK (rotation_days > 0),
        reminder_days INTEGER NOT NULL CHECK (reminder_days >= 0),
        auto_rotate INTEGER NOT NULL DEFAULT 0,
        require_approval INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        owner_id TEXT,
        created_at TEXT NOT NULL,
        CHECK (reminder_days < rotation_days)
    );

    CREATE TABLE IF NOT EXISTS credentials (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        username TEXT NOT NULL,
        encrypted_secret TEXT NOT NULL,
        encrypted_totp_secret TEXT,
        strength TEXT NOT NULL DEFAULT 'MEDIUM',
        expires_at TEXT,
        rotation_policy_id TEXT REFERENCES rotation_policies(id) ON DELETE SET NULL,
        owner_id TEXT NOT NULL,
        folder_id TEXT,
        url TEXT,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_credentials_owner ON credentials(owner_id);
    CREATE INDEX IF NOT EXISTS idx_credentials_policy ON credentials(rotation_policy_id);

    CREATE TABLE IF NOT EXISTS credential_history (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        credential_id TEXT NOT NULL REFERENCES credentials(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        username TEXT NOT NULL,
        encrypted_secret TEXT NOT NULL,
        encrypted_totp_secret TEXT,
        strength TEXT NOT NULL,
        expires_at TEXT,
        folder_id TEXT,
        url TEXT,
        notes TEXT,
        change_type TEXT NOT NULL,
        changed_by TEXT NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_history_credential ON credential_history(credential_id, seq);

    CREATE TABLE IF NOT EXISTS rotation_records (
        id TEXT PRIMARY KEY,
        credential_id TEXT NOT NULL REFERENCES credentials(id) ON DELETE CASCADE,
        policy_id TEXT REFERENCES rotation_policies(id) ON DELETE SET NULL,
        state TEXT NOT NULL,
        rotation_type TEXT NOT NULL,
        scheduled_for TEXT,
        completed_at TEXT,
        notes TEXT,
        previous_secret TEXT,
        new_secret TEXT,
        created_by TEXT NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_rotations_credential ON rotation_records(credential_id, state);

    CREATE TABLE IF NOT EXISTS password_policies (
        tenant_id TEXT PRIMARY KEY,
        min_length INTEGER NOT NULL,
        require_uppercase INTEGER NOT NULL,
        require_lowercase INTEGER NOT NULL,
        require_numbers INTEGER NOT NULL,
        require_special INTEGER NOT NULL,
        expiration_days INTEGER,
        prevent_reuse_count INTEGER NOT NULL DEFAULT 0,
        require_change_on_first_login INTEGER NOT NULL DEFAULT 0,
        require_change_after_days INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0) -> None:
        """
        Initialize the database and create the schema.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds a writer waits for the write lock
        """
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout
        self.initialize_db()

    @property
    def path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(self._db_path, timeout=self._busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize_db(self) -> None:
        """Create tables if they don't exist and switch to the WAL journal."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = self._get_connection()
        try:
            # Persistent per database file
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(self._SCHEMA)
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run statements as one atomic unit.

        Takes the write lock up front (BEGIN IMMEDIATE) so a concurrent
        writer cannot interleave. Any exception rolls everything back.

        Raises:
            StorageBusyError: If another writer holds the lock past the busy timeout
        """
        conn = self._get_connection()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise StorageBusyError(f"Database is busy: {e}") from e
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def connection(self, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
        """
        Yield the caller's connection, or a fresh write transaction if none.

        Lets store methods that write join an outer transaction when one is passed.
        """
        if conn is not None:
            yield conn
            return
        with self.transaction() as own:
            yield own

    @contextmanager
    def reader(self, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
        """
        Yield the caller's connection, or a fresh autocommit one for reads.

        No transaction is opened, so reads see the last committed state and
        never queue behind a writer.
        """
        if conn is not None:
            yield conn
            return
        own = self._get_connection()
        try:
            yield own
        finally:
            own.close()


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value is not None else None


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
