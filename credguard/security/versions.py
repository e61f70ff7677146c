"""
Credential Versions
===================

Creation and point-in-time restore of credentials, recorded in the
history ledger.

Restoring appends a snapshot of the current state (UPDATE), writes the
chosen snapshot's fields back onto the credential, then appends the
restored state (RESTORE), all in one transaction. Envelopes are copied
as stored and never decrypted.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from credguard.core.errors import NotFoundError
from credguard.core.logging import get_secure_logger
from credguard.core.models import ChangeType, Credential, utcnow
from credguard.db.credentials import CredentialRepository
from credguard.db.database import VaultDatabase
from credguard.db.history import HistoryStore
from credguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    AuditSink,
    NullAuditSink,
)

logger = get_secure_logger(__name__)


class CredentialVersions:
    """
    Versioned writes to credentials.

    Usage:
        versions = CredentialVersions(db, audit=audit_log)
        versions.create(credential, actor="alice")
        versions.restore(credential.id, entry.id, actor="alice")
    """

    __slots__ = ("_db", "_credentials", "_history", "_audit")

    def __init__(
        self,
        db: VaultDatabase,
        history: Optional[HistoryStore] = None,
        audit: Optional[AuditSink] = None,
    ) -> None:
        self._db = db
        self._credentials = CredentialRepository(db)
        self._history = history or HistoryStore(db)
        self._audit: AuditSink = audit or NullAuditSink()

    def create(self, credential: Credential, actor: str) -> Credential:
        """Store a new credential together with its CREATE snapshot."""
        with self._db.transaction() as conn:
            self._credentials.add(credential, conn=conn)
            self._history.append(credential.id, credential, actor, ChangeType.CREATE, conn=conn)

        logger.info("Credential %s created", credential.id)
        self._audit.log(
            AuditEventType.PASSWORD_CREATED,
            AuditSeverity.INFO,
            "Credential created",
            user_id=actor,
            details={"credential_id": credential.id},
        )
        return credential

    def restore(self, credential_id: str, entry_id: str, actor: str) -> Credential:
        """
        Roll a credential back to a history snapshot.

        Args:
            credential_id: Credential to restore
            entry_id: History entry to restore from
            actor: User performing the restore

        Returns:
            The credential as stored after the restore

        Raises:
            NotFoundError: If the credential does not exist, or the entry does
                not exist or belongs to another credential
        """
        with self._db.transaction() as conn:
            current = self._credentials.require(credential_id, conn=conn)
            entry = self._history.get(entry_id, conn=conn)
            if entry.credential_id != credential_id:
                raise NotFoundError(
                    f"History entry '{entry_id}' not found for credential '{credential_id}'"
                )

            self._history.append(credential_id, current, actor, ChangeType.UPDATE, conn=conn)

            restored = replace(
                current,
                name=entry.name,
                username=entry.username,
                encrypted_secret=entry.encrypted_secret,
                encrypted_totp_secret=entry.encrypted_totp_secret,
                strength=entry.strength,
                expires_at=entry.expires_at,
                folder_id=entry.folder_id,
                url=entry.url,
                notes=entry.notes,
                updated_at=utcnow(),
            )
            self._credentials.update(restored, conn=conn)
            self._history.append(credential_id, restored, actor, ChangeType.RESTORE, conn=conn)

        logger.info("Credential %s restored from history %s", credential_id, entry_id)
        self._audit.log(
            AuditEventType.PASSWORD_RESTORED,
            AuditSeverity.WARNING,
            "Credential restored from history",
            user_id=actor,
            details={"credential_id": credential_id, "history_id": entry_id},
        )
        return restored
