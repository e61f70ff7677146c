"""
Tenant Settings Store
=====================

Per-tenant password policy configuration.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from credguard.core.models import PasswordPolicyConfig, utcnow
from credguard.db.database import VaultDatabase, to_db_time


class PolicySettingsStore:
    """SQLite-backed PasswordPolicyConfig per tenant."""

    __slots__ = ("_db",)

    def __init__(self, db: VaultDatabase) -> None:
        self._db = db

    def get(self, tenant_id: str) -> Optional[PasswordPolicyConfig]:
        """Stored policy for a tenant, active or not. None if never set."""
        with self._db.reader() as c:
            row = c.execute(
                "SELECT * FROM password_policies WHERE tenant_id = ?",
                (tenant_id,)
            ).fetchone()
        return self._row_to_config(row) if row else None

    def save(self, tenant_id: str, config: PasswordPolicyConfig) -> None:
        with self._db.connection() as c:
            c.execute("""
                INSERT INTO password_policies (
                    tenant_id, min_length, require_uppercase, require_lowercase,
                    require_numbers, require_special, expiration_days, prevent_reuse_count,
                    require_change_on_first_login, require_change_after_days, is_active,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id) DO UPDATE SET
                    min_length = excluded.min_length,
                    require_uppercase = excluded.require_uppercase,
                    require_lowercase = excluded.require_lowercase,
                    require_numbers = excluded.require_numbers,
                    require_special = excluded.require_special,
                    expiration_days = excluded.expiration_days,
                    prevent_reuse_count = excluded.prevent_reuse_count,
                    require_change_on_first_login = excluded.require_change_on_first_login,
                    require_change_after_days = excluded.require_change_after_days,
                    is_active = excluded.is_active,
                    updated_at = excluded.updated_at
            """, (
                tenant_id,
                config.min_length,
                int(config.require_uppercase),
                int(config.require_lowercase),
                int(config.require_numbers),
                int(config.require_special),
                config.expiration_days,
                config.prevent_reuse_count,
                int(config.require_change_on_first_login),
                config.require_change_after_days,
                int(config.is_active),
                to_db_time(utcnow()),
            ))

    def delete(self, tenant_id: str) -> None:
        with self._db.connection() as c:
            c.execute("DELETE FROM password_policies WHERE tenant_id = ?", (tenant_id,))

    @staticmethod
    def _row_to_config(row: sqlite3.Row) -> PasswordPolicyConfig:
        return PasswordPolicyConfig(
            min_length=row["min_length"],
            require_uppercase=bool(row["require_uppercase"]),
            require_lowercase=bool(row["require_lowercase"]),
            require_numbers=bool(row["require_numbers"]),
            require_special=bool(row["require_special"]),
            expiration_days=row["expiration_days"],
            prevent_reuse_count=row["prevent_reuse_count"],
            require_change_on_first_login=bool(row["require_change_on_first_login"]),
            require_change_after_days=row["require_change_after_days"],
            is_active=bool(row["is_active"]),
        )
