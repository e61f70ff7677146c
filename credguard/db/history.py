"""
Credential History Store
========================

Append-only ledger of prior credential snapshots.

A snapshot must be appended immediately before a mutation is applied,
inside the same transaction, so the prior value is always recoverable.
Entries are never updated; the only removal paths are the optional
retention limit and deletion of the owning credential.
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import List, Optional

from credguard.core.errors import NotFoundError
from credguard.core.logging import get_secure_logger
from credguard.core.models import ChangeType, Credential, HistoryEntry, Strength, utcnow
from credguard.db.database import VaultDatabase, from_db_time, to_db_time

logger = get_secure_logger(__name__)


class HistoryStore:
    """
    SQLite-backed history ledger.

    Args:
        db: Shared vault database
        retention_count: Keep at most this many snapshots per credential
            (None keeps everything)
    """

    __slots__ = ("_db", "_retention_count")

    def __init__(self, db: VaultDatabase, retention_count: Optional[int] = None) -> None:
        if retention_count is not None and retention_count < 1:
            raise ValueError("retention_count must be at least 1")
        self._db = db
        self._retention_count = retention_count

    def append(
        self,
        credential_id: str,
        snapshot: Credential,
        changed_by: str,
        change_type: ChangeType = ChangeType.UPDATE,
        conn: Optional[sqlite3.Connection] = None,
    ) -> HistoryEntry:
        """
        Persist an immutable copy of a credential's full encrypted field set.

        Args:
            credential_id: Credential the snapshot belongs to
            snapshot: Credential state to preserve (envelopes, not plaintext)
            changed_by: Actor making the change
            change_type: CREATE, UPDATE or RESTORE
            conn: Outer transaction to join

        Returns:
            The stored HistoryEntry
        """
        entry = HistoryEntry(
            id=str(uuid.uuid4()),
            credential_id=credential_id,
            name=snapshot.name,
            username=snapshot.username,
            encrypted_secret=snapshot.encrypted_secret,
            encrypted_totp_secret=snapshot.encrypted_totp_secret,
            strength=snapshot.strength,
            expires_at=snapshot.expires_at,
            folder_id=snapshot.folder_id,
            url=snapshot.url,
            notes=snapshot.notes,
            change_type=change_type,
            changed_by=changed_by,
            created_at=utcnow(),
        )

        with self._db.connection(conn) as c:
            (seq,) = c.execute(
                "SELECT COALESCE(MAX(seq), 0) + 1 FROM credential_history WHERE credential_id = ?",
                (credential_id,)
            ).fetchone()
            c.execute("""
                INSERT INTO credential_history (
                    id, seq, credential_id, name, username, encrypted_secret,
                    encrypted_totp_secret, strength, expires_at, folder_id, url, notes,
                    change_type, changed_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.id,
                seq,
                entry.credential_id,
                entry.name,
                entry.username,
                entry.encrypted_secret,
                entry.encrypted_totp_secret,
                entry.strength.value,
                to_db_time(entry.expires_at),
                entry.folder_id,
                entry.url,
                entry.notes,
                entry.change_type.value,
                entry.changed_by,
                to_db_time(entry.created_at),
            ))
            if self._retention_count is not None:
                self._prune(c, credential_id, self._retention_count)

        logger.debug(
            "History %s appended for credential %s (%s)",
            entry.id, credential_id, change_type.value,
        )
        return entry

    def query(
        self,
        credential_id: str,
        limit: Optional[int] = None,
        newest_first: bool = True,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[HistoryEntry]:
        """
        Load snapshots for a credential in append order.

        Args:
            credential_id: Credential to load
            limit: Maximum entries (taken from the requested end)
            newest_first: Order newest to oldest when True

        Returns:
            Ordered list of snapshots
        """
        order = "DESC" if newest_first else "ASC"
        sql = f"SELECT * FROM credential_history WHERE credential_id = ? ORDER BY seq {order}"
        params: tuple = (credential_id,)
        if limit is not None:
            if limit < 1:
                return []
            sql += " LIMIT ?"
            params = (credential_id, limit)

        with self._db.reader(conn) as c:
            rows = c.execute(sql, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get(self, entry_id: str, conn: Optional[sqlite3.Connection] = None) -> HistoryEntry:
        with self._db.reader(conn) as c:
            row = c.execute(
                "SELECT * FROM credential_history WHERE id = ?",
                (entry_id,)
            ).fetchone()
        if not row:
            raise NotFoundError(f"History entry '{entry_id}' not found")
        return self._row_to_entry(row)

    def count(self, credential_id: str, change_type: Optional[ChangeType] = None) -> int:
        with self._db.reader() as c:
            if change_type is None:
                (n,) = c.execute(
                    "SELECT COUNT(*) FROM credential_history WHERE credential_id = ?",
                    (credential_id,)
                ).fetchone()
            else:
                (n,) = c.execute(
                    "SELECT COUNT(*) FROM credential_history WHERE credential_id = ? AND change_type = ?",
                    (credential_id, change_type.value)
                ).fetchone()
        return n

    def prune(self, credential_id: str, keep: int) -> int:
        """Drop all but the newest `keep` snapshots. Returns rows removed."""
        if keep < 1:
            raise ValueError("keep must be at least 1")
        with self._db.connection() as c:
            return self._prune(c, credential_id, keep)

    @staticmethod
    def _prune(conn: sqlite3.Connection, credential_id: str, keep: int) -> int:
        result = conn.execute("""
            DELETE FROM credential_history
            WHERE credential_id = ? AND seq NOT IN (
                SELECT seq FROM credential_history
                WHERE credential_id = ? ORDER BY seq DESC LIMIT ?
            )
        """, (credential_id, credential_id, keep))
        return result.rowcount

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> HistoryEntry:
        return HistoryEntry(
            id=row["id"],
            credential_id=row["credential_id"],
            name=row["name"],
            username=row["username"],
            encrypted_secret=row["encrypted_secret"],
            encrypted_totp_secret=row["encrypted_totp_secret"],
            strength=Strength(row["strength"]),
            expires_at=from_db_time(row["expires_at"]),
            folder_id=row["folder_id"],
            url=row["url"],
            notes=row["notes"],
            change_type=ChangeType(row["change_type"]),
            changed_by=row["changed_by"],
            created_at=from_db_time(row["created_at"]),
        )
