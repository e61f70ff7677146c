"""
Rotation Store
==============

Persistence for rotation policies and rotation records.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple

from credguard.core.errors import NotFoundError
from credguard.core.models import (
    RotationPolicy,
    RotationRecord,
    RotationState,
    RotationType,
)
from credguard.db.database import VaultDatabase, from_db_time, to_db_time


class RotationStore:
    """SQLite-backed store of RotationPolicy and RotationRecord rows."""

    __slots__ = ("_db",)

    def __init__(self, db: VaultDatabase) -> None:
        self._db = db

    # Policies

    def add_policy(self, policy: RotationPolicy, conn: Optional[sqlite3.Connection] = None) -> RotationPolicy:
        with self._db.connection(conn) as c:
            c.execute("""
                INSERT INTO rotation_policies (
                    id, name, description, rotation_days, reminder_days, auto_rotate,
                    require_approval, is_active, owner_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                policy.id,
                policy.name,
                policy.description,
                policy.rotation_days,
                policy.reminder_days,
                int(policy.auto_rotate),
                int(policy.require_approval),
                int(policy.is_active),
                policy.owner_id,
                to_db_time(policy.created_at),
            ))
        return policy

    def update_policy(self, policy: RotationPolicy, conn: Optional[sqlite3.Connection] = None) -> RotationPolicy:
        with self._db.connection(conn) as c:
            result = c.execute("""
                UPDATE rotation_policies
                SET name = ?, description = ?, rotation_days = ?, reminder_days = ?,
                    auto_rotate = ?, require_approval = ?, is_active = ?
                WHERE id = ?
            """, (
                policy.name,
                policy.description,
                policy.rotation_days,
                policy.reminder_days,
                int(policy.auto_rotate),
                int(policy.require_approval),
                int(policy.is_active),
                policy.id,
            ))
            if result.rowcount == 0:
                raise NotFoundError(f"Rotation policy '{policy.id}' not found")
        return policy

    def get_policy(self, policy_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[RotationPolicy]:
        with self._db.reader(conn) as c:
            row = c.execute(
                "SELECT * FROM rotation_policies WHERE id = ?",
                (policy_id,)
            ).fetchone()
        return self._row_to_policy(row) if row else None

    def require_policy(self, policy_id: str, conn: Optional[sqlite3.Connection] = None) -> RotationPolicy:
        policy = self.get_policy(policy_id, conn=conn)
        if policy is None:
            raise NotFoundError(f"Rotation policy '{policy_id}' not found")
        return policy

    def list_policies(self, owner_id: Optional[str] = None) -> List[RotationPolicy]:
        with self._db.reader() as c:
            if owner_id is None:
                rows = c.execute(
                    "SELECT * FROM rotation_policies ORDER BY created_at DESC"
                ).fetchall()
            else:
                rows = c.execute(
                    "SELECT * FROM rotation_policies WHERE owner_id = ? ORDER BY created_at DESC",
                    (owner_id,)
                ).fetchall()
        return [self._row_to_policy(row) for row in rows]

    def delete_policy(self, policy_id: str, conn: Optional[sqlite3.Connection] = None) -> None:
        with self._db.connection(conn) as c:
            result = c.execute("DELETE FROM rotation_policies WHERE id = ?", (policy_id,))
            if result.rowcount == 0:
                raise NotFoundError(f"Rotation policy '{policy_id}' not found")

    # Records

    def add_record(self, record: RotationRecord, conn: Optional[sqlite3.Connection] = None) -> RotationRecord:
        with self._db.connection(conn) as c:
            c.execute("""
                INSERT INTO rotation_records (
                    id, credential_id, policy_id, state, rotation_type, scheduled_for,
                    completed_at, notes, previous_secret, new_secret, created_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.id,
                record.credential_id,
                record.policy_id,
                record.state.value,
                record.rotation_type.value,
                to_db_time(record.scheduled_for),
                to_db_time(record.completed_at),
                record.notes,
                record.previous_secret,
                record.new_secret,
                record.created_by,
                to_db_time(record.created_at),
            ))
        return record

    def get_record(self, rotation_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[RotationRecord]:
        with self._db.reader(conn) as c:
            row = c.execute(
                "SELECT * FROM rotation_records WHERE id = ?",
                (rotation_id,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def require_record(self, rotation_id: str, conn: Optional[sqlite3.Connection] = None) -> RotationRecord:
        record = self.get_record(rotation_id, conn=conn)
        if record is None:
            raise NotFoundError(f"Rotation '{rotation_id}' not found")
        return record

    def transition(
        self,
        rotation_id: str,
        from_state: RotationState,
        to_state: RotationState,
        conn: Optional[sqlite3.Connection] = None,
        completed_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        previous_secret: Optional[str] = None,
        new_secret: Optional[str] = None,
    ) -> bool:
        """
        Compare-and-set a record's state.

        Only updates the row if it is still in from_state. Optional fields
        left as None keep their stored value.

        Returns:
            True if the row transitioned, False if its state had changed
        """
        with self._db.connection(conn) as c:
            result = c.execute("""
                UPDATE rotation_records
                SET state = ?,
                    completed_at = COALESCE(?, completed_at),
                    notes = COALESCE(?, notes),
                    previous_secret = COALESCE(?, previous_secret),
                    new_secret = COALESCE(?, new_secret)
                WHERE id = ? AND state = ?
            """, (
                to_state.value,
                to_db_time(completed_at),
                notes,
                previous_secret,
                new_secret,
                rotation_id,
                from_state.value,
            ))
        return result.rowcount == 1

    def find_scheduled(self, credential_id: str, conn: Optional[sqlite3.Connection] = None) -> List[RotationRecord]:
        """SCHEDULED records for a credential, oldest first."""
        with self._db.reader(conn) as c:
            rows = c.execute("""
                SELECT * FROM rotation_records
                WHERE credential_id = ? AND state = ?
                ORDER BY created_at, id
            """, (credential_id, RotationState.SCHEDULED.value)).fetchall()
        return [self._row_to_record(row) for row in rows]

    def last_completed_at(self, credential_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[datetime]:
        with self._db.reader(conn) as c:
            (value,) = c.execute("""
                SELECT MAX(completed_at) FROM rotation_records
                WHERE credential_id = ? AND state = ?
            """, (credential_id, RotationState.COMPLETED.value)).fetchone()
        return from_db_time(value)

    def list_records(
        self,
        credential_id: Optional[str] = None,
        policy_id: Optional[str] = None,
        state: Optional[RotationState] = None,
        owner_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[RotationRecord], int]:
        """
        Filtered, paginated rotation history, newest first.

        Returns:
            Tuple of (records on this page, total matching records)
        """
        if page < 1:
            raise ValueError("page must be at least 1")
        if not 1 <= page_size <= 100:
            raise ValueError("page_size must be between 1 and 100")

        clauses: list[str] = []
        params: list = []
        if credential_id is not None:
            clauses.append("r.credential_id = ?")
            params.append(credential_id)
        if policy_id is not None:
            clauses.append("r.policy_id = ?")
            params.append(policy_id)
        if state is not None:
            clauses.append("r.state = ?")
            params.append(state.value)
        if owner_id is not None:
            clauses.append("c.owner_id = ?")
            params.append(owner_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        base = f"FROM rotation_records r JOIN credentials c ON c.id = r.credential_id {where}"
        with self._db.reader() as c:
            (total,) = c.execute(f"SELECT COUNT(*) {base}", params).fetchone()
            rows = c.execute(
                f"SELECT r.* {base} ORDER BY COALESCE(r.completed_at, r.created_at) DESC, r.id "
                "LIMIT ? OFFSET ?",
                [*params, page_size, (page - 1) * page_size],
            ).fetchall()
        return [self._row_to_record(row) for row in rows], total

    @staticmethod
    def _row_to_policy(row: sqlite3.Row) -> RotationPolicy:
        return RotationPolicy(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            rotation_days=row["rotation_days"],
            reminder_days=row["reminder_days"],
            auto_rotate=bool(row["auto_rotate"]),
            require_approval=bool(row["require_approval"]),
            is_active=bool(row["is_active"]),
            owner_id=row["owner_id"],
            created_at=from_db_time(row["created_at"]),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> RotationRecord:
        return RotationRecord(
            id=row["id"],
            credential_id=row["credential_id"],
            policy_id=row["policy_id"],
            state=RotationState(row["state"]),
            rotation_type=RotationType(row["rotation_type"]),
            scheduled_for=from_db_time(row["scheduled_for"]),
            completed_at=from_db_time(row["completed_at"]),
            notes=row["notes"],
            previous_secret=row["previous_secret"],
            new_secret=row["new_secret"],
            created_by=row["created_by"],
            created_at=from_db_time(row["created_at"]),
        )
