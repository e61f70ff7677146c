"""
Credential Repository
=====================

CRUD on the stored-secret record. Values arrive already encrypted.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import List, Optional

from credguard.core.errors import NotFoundError
from credguard.core.models import Credential, Strength, utcnow
from credguard.db.database import VaultDatabase, from_db_time, to_db_time


class CredentialRepository:
    """SQLite-backed store of Credential rows."""

    __slots__ = ("_db",)

    def __init__(self, db: VaultDatabase) -> None:
        self._db = db

    def add(self, credential: Credential, conn: Optional[sqlite3.Connection] = None) -> Credential:
        with self._db.connection(conn) as c:
            c.execute("""
                INSERT INTO credentials (
                    id, name, username, encrypted_secret, encrypted_totp_secret,
                    strength, expires_at, rotation_policy_id, owner_id, folder_id,
                    url, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                credential.id,
                credential.name,
                credential.username,
                credential.encrypted_secret,
                credential.encrypted_totp_secret,
                credential.strength.value,
                to_db_time(credential.expires_at),
                credential.rotation_policy_id,
                credential.owner_id,
                credential.folder_id,
                credential.url,
                credential.notes,
                to_db_time(credential.created_at),
                to_db_time(credential.updated_at),
            ))
        return credential

    def get(self, credential_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Credential]:
        with self._db.reader(conn) as c:
            row = c.execute(
                "SELECT * FROM credentials WHERE id = ?",
                (credential_id,)
            ).fetchone()
        return self._row_to_credential(row) if row else None

    def require(self, credential_id: str, conn: Optional[sqlite3.Connection] = None) -> Credential:
        """Get a credential or raise NotFoundError."""
        credential = self.get(credential_id, conn=conn)
        if credential is None:
            raise NotFoundError(f"Credential '{credential_id}' not found")
        return credential

    def list_by_owner(self, owner_id: str) -> List[Credential]:
        with self._db.reader() as c:
            rows = c.execute(
                "SELECT * FROM credentials WHERE owner_id = ? ORDER BY created_at, id",
                (owner_id,)
            ).fetchall()
        return [self._row_to_credential(row) for row in rows]

    def list_with_policy(self, conn: Optional[sqlite3.Connection] = None) -> List[Credential]:
        """Credentials that have a rotation policy attached."""
        with self._db.reader(conn) as c:
            rows = c.execute(
                "SELECT * FROM credentials WHERE rotation_policy_id IS NOT NULL ORDER BY id"
            ).fetchall()
        return [self._row_to_credential(row) for row in rows]

    def update(self, credential: Credential, conn: Optional[sqlite3.Connection] = None) -> Credential:
        """Overwrite every mutable field of a stored credential."""
        credential.updated_at = utcnow()
        with self._db.connection(conn) as c:
            result = c.execute("""
                UPDATE credentials
                SET name = ?, username = ?, encrypted_secret = ?, encrypted_totp_secret = ?,
                    strength = ?, expires_at = ?, rotation_policy_id = ?, folder_id = ?,
                    url = ?, notes = ?, updated_at = ?
                WHERE id = ?
            """, (
                credential.name,
                credential.username,
                credential.encrypted_secret,
                credential.encrypted_totp_secret,
                credential.strength.value,
                to_db_time(credential.expires_at),
                credential.rotation_policy_id,
                credential.folder_id,
                credential.url,
                credential.notes,
                to_db_time(credential.updated_at),
                credential.id,
            ))
            if result.rowcount == 0:
                raise NotFoundError(f"Credential '{credential.id}' not found")
        return credential

    def update_secret(
        self,
        credential_id: str,
        encrypted_secret: str,
        strength: Strength,
        conn: Optional[sqlite3.Connection] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        with self._db.connection(conn) as c:
            result = c.execute("""
                UPDATE credentials
                SET encrypted_secret = ?, strength = ?, updated_at = ?
                WHERE id = ?
            """, (
                encrypted_secret,
                strength.value,
                to_db_time(updated_at or utcnow()),
                credential_id,
            ))
            if result.rowcount == 0:
                raise NotFoundError(f"Credential '{credential_id}' not found")

    def set_rotation_policy(
        self,
        credential_id: str,
        policy_id: Optional[str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        with self._db.connection(conn) as c:
            result = c.execute(
                "UPDATE credentials SET rotation_policy_id = ?, updated_at = ? WHERE id = ?",
                (policy_id, to_db_time(utcnow()), credential_id)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Credential '{credential_id}' not found")

    def detach_policy(self, policy_id: str, conn: Optional[sqlite3.Connection] = None) -> int:
        """Remove a policy from every credential using it. Returns the count."""
        with self._db.connection(conn) as c:
            result = c.execute(
                "UPDATE credentials SET rotation_policy_id = NULL WHERE rotation_policy_id = ?",
                (policy_id,)
            )
        return result.rowcount

    def delete(self, credential_id: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        """
        Permanently delete a credential.

        WARNING: History snapshots and rotation records go with it.
        """
        with self._db.connection(conn) as c:
            result = c.execute("DELETE FROM credentials WHERE id = ?", (credential_id,))
        return result.rowcount > 0

    def delete_many(
        self,
        owner_id: str,
        credential_ids: List[str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Delete several of one owner's credentials at once. Returns the count removed."""
        if not credential_ids:
            return 0
        placeholders = ", ".join("?" * len(credential_ids))
        with self._db.connection(conn) as c:
            result = c.execute(
                f"DELETE FROM credentials WHERE owner_id = ? AND id IN ({placeholders})",
                (owner_id, *credential_ids)
            )
        return result.rowcount

    @staticmethod
    def _row_to_credential(row: sqlite3.Row) -> Credential:
        return Credential(
            id=row["id"],
            name=row["name"],
            username=row["username"],
            encrypted_secret=row["encrypted_secret"],
            encrypted_totp_secret=row["encrypted_totp_secret"],
            strength=Strength(row["strength"]),
            expires_at=from_db_time(row["expires_at"]),
            rotation_policy_id=row["rotation_policy_id"],
            owner_id=row["owner_id"],
            folder_id=row["folder_id"],
            url=row["url"],
            notes=row["notes"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )
