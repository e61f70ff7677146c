"""
Vault Analysis
==============

Decrypts an owner's credentials in memory and runs the duplicate,
reuse, similarity and breach scans over them. Duplicate groups can then
be resolved by deleting them or merging them into one kept credential.

Plaintext never leaves this module's return values as anything but
DecryptedEntry objects, whose repr hides the secret.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from credguard.analysis.breach import BreachDetector, BreachResult
from credguard.analysis.similarity import (
    DecryptedEntry,
    SecretGroup,
    SimilarGroup,
    SimilarityAnalyzer,
)
from credguard.core.crypto.cipher import SecretCipher
from credguard.core.crypto.kdf import Purpose
from credguard.core.errors import DecryptionError, NotFoundError, ValidationError
from credguard.core.logging import get_secure_logger
from credguard.db.credentials import CredentialRepository
from credguard.security.audit import AuditEventType, AuditSeverity, AuditSink, NullAuditSink

logger = get_secure_logger(__name__)


@dataclass(frozen=True, slots=True)
class DecryptedVault:
    entries: List[DecryptedEntry]
    skipped_count: int = 0


@dataclass(frozen=True, slots=True)
class VaultReport:
    duplicates: List[SecretGroup] = field(default_factory=list)
    reused: List[SecretGroup] = field(default_factory=list)
    similar: List[SimilarGroup] = field(default_factory=list)
    breached: List[Tuple[str, BreachResult]] = field(default_factory=list)
    scanned_count: int = 0
    skipped_count: int = 0


@dataclass(frozen=True, slots=True)
class DuplicateResolution:
    deleted_ids: List[str]
    deleted_count: int
    kept_id: Optional[str] = None


class VaultAnalyzer:
    """
    Bulk analysis over one owner's credentials.

    Usage:
        analyzer = VaultAnalyzer(cipher, repository, SimilarityAnalyzer(config.similarity))
        report = analyzer.scan(owner_id)
    """

    def __init__(
        self,
        cipher: SecretCipher,
        credentials: CredentialRepository,
        similarity: Optional[SimilarityAnalyzer] = None,
        breach: Optional[BreachDetector] = None,
        audit: Optional[AuditSink] = None,
    ) -> None:
        self._cipher = cipher
        self._credentials = credentials
        self._similarity = similarity or SimilarityAnalyzer()
        self._breach = breach
        self._audit: AuditSink = audit or NullAuditSink()

    def decrypt_owner(self, owner_id: str) -> DecryptedVault:
        """Decrypt every credential of an owner, counting rows that fail."""
        entries: List[DecryptedEntry] = []
        skipped = 0

        for credential in self._credentials.list_by_owner(owner_id):
            try:
                secret = self._cipher.decrypt(credential.encrypted_secret, Purpose.PASSWORD)
            except DecryptionError:
                skipped += 1
                logger.warning("Credential %s could not be decrypted for analysis", credential.id)
                continue
            entries.append(DecryptedEntry(
                credential_id=credential.id,
                name=credential.name,
                username=credential.username,
                secret=secret,
                url=credential.url,
            ))

        return DecryptedVault(entries=entries, skipped_count=skipped)

    def check_breaches(
        self,
        entries: List[DecryptedEntry],
        actor: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> List[Tuple[str, BreachResult]]:
        """
        Screen entries against the breach corpus.

        Returns:
            (credential_id, result) for every breached entry checked
        """
        if self._breach is None:
            raise RuntimeError("VaultAnalyzer was created without a BreachDetector")

        results = self._breach.check_batch(
            (e.secret for e in entries), cancel_event=cancel_event, timeout=timeout
        )
        breached = [
            (entry.credential_id, result)
            for entry, result in zip(entries, results)
            if result.is_breached
        ]

        self._audit.log(
            AuditEventType.PASSWORD_BREACH_CHECKED,
            AuditSeverity.INFO,
            "Breach screening completed",
            user_id=actor,
            details={"checked": len(results), "breached": len(breached)},
        )
        for credential_id, result in breached:
            self._audit.log(
                AuditEventType.PASSWORD_BREACH_DETECTED,
                AuditSeverity.WARNING,
                "Password found in breach corpus",
                user_id=actor,
                details={"credential_id": credential_id, "breach_count": result.breach_count},
            )
        return breached

    def scan(
        self,
        owner_id: str,
        include_similar: bool = True,
        include_breach: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> VaultReport:
        """
        Run every analysis over an owner's vault.

        The similarity scan honours offset/limit and the analyzer's entry
        bound; duplicate and reuse grouping always covers the full vault.
        """
        vault = self.decrypt_owner(owner_id)

        similar: List[SimilarGroup] = []
        if include_similar:
            similar = self._similarity.find_similar(vault.entries, offset=offset, limit=limit)

        breached: List[Tuple[str, BreachResult]] = []
        if include_breach:
            breached = self.check_breaches(vault.entries, actor=owner_id)

        report = VaultReport(
            duplicates=self._similarity.find_duplicates(vault.entries),
            reused=self._similarity.find_reused(vault.entries),
            similar=similar,
            breached=breached,
            scanned_count=len(vault.entries),
            skipped_count=vault.skipped_count,
        )
        logger.info(
            "Vault scan for owner %s: %d scanned, %d skipped",
            owner_id, report.scanned_count, report.skipped_count,
        )
        return report

    def resolve_duplicates(
        self,
        owner_id: str,
        credential_ids: List[str],
        actor: str,
        keep_id: Optional[str] = None,
    ) -> DuplicateResolution:
        """
        Delete a duplicate group, or merge it into one kept credential.

        Args:
            owner_id: Owner of every listed credential
            credential_ids: The group to resolve
            actor: User performing the resolution
            keep_id: Merge into this credential instead of deleting all

        Raises:
            ValidationError: If the group is empty, or keep_id is not in it
                or is its only member
            NotFoundError: If any listed credential is not the owner's
        """
        ids = list(dict.fromkeys(credential_ids))
        if not ids:
            raise ValidationError("At least one credential id is required")

        if keep_id is None:
            to_delete = ids
        elif keep_id not in ids:
            raise ValidationError("keep_id must be one of credential_ids")
        else:
            to_delete = [i for i in ids if i != keep_id]
            if not to_delete:
                raise ValidationError("No credentials to delete for merge")

        owned = {c.id for c in self._credentials.list_by_owner(owner_id)}
        foreign = [i for i in ids if i not in owned]
        if foreign:
            raise NotFoundError(f"{len(foreign)} credential(s) not found for owner '{owner_id}'")

        deleted = self._credentials.delete_many(owner_id, to_delete)

        if keep_id is None:
            event, description = AuditEventType.PASSWORD_BULK_DELETE, "Duplicate credentials deleted"
        else:
            event, description = AuditEventType.PASSWORD_BULK_MERGE, "Duplicate credentials merged"
        self._audit.log(
            event,
            AuditSeverity.WARNING,
            description,
            user_id=actor,
            details={
                "deleted_ids": to_delete,
                "kept_id": keep_id,
                "reason": "duplicate_resolution",
            },
        )
        logger.info("Resolved %d duplicate credential(s) for owner %s", deleted, owner_id)
        return DuplicateResolution(deleted_ids=to_delete, deleted_count=deleted, kept_id=keep_id)
