"""
Rotation Scheduler
==================

Drives the credential rotation state machine:

    SCHEDULED -> COMPLETED
    SCHEDULED -> CANCELLED

COMPLETED and CANCELLED are terminal. Completing a rotation appends the
pre-rotation snapshot to history, replaces the credential's secret and
closes the record in a single database transaction. Policy and reuse
checks run before that transaction opens, so a rejected secret writes
nothing.

Time-based triggering is external: a job runner calls
find_due_for_rotation() and auto_rotate_password() for each result.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, List, Optional

from credguard.core.config import RotationConfig
from credguard.core.crypto.cipher import SecretCipher
from credguard.core.crypto.kdf import Purpose
from credguard.core.errors import InvalidStateError, ReuseViolation
from credguard.core.logging import get_secure_logger
from credguard.core.models import (
    ChangeType,
    Credential,
    PasswordPolicyConfig,
    RotationPolicy,
    RotationRecord,
    RotationState,
    RotationType,
    require_aware,
    utcnow,
)
from credguard.db.credentials import CredentialRepository
from credguard.db.database import VaultDatabase
from credguard.db.history import HistoryStore
from credguard.db.rotations import RotationStore
from credguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    AuditSink,
    NullAuditSink,
)
from credguard.security.generator import generate_for_policy
from credguard.security.policy import PolicyEngine, calculate_strength

logger = get_secure_logger(__name__)

_ONE_DAY = timedelta(days=1)

_POLICY_FIELDS = frozenset({
    "name", "description", "rotation_days", "reminder_days",
    "auto_rotate", "require_approval", "is_active",
})


@dataclass(frozen=True, slots=True)
class AutoRotationResult:
    """
    Outcome of an automatic rotation.

    new_secret is the generated plaintext, returned once so the caller can
    propagate it to the target system. It is never persisted unencrypted.
    """
    record: RotationRecord
    new_secret: str

    def __repr__(self) -> str:
        return f"AutoRotationResult(record={self.record!r})"


@dataclass(frozen=True, slots=True)
class RotationReminder:
    credential_id: str
    credential_name: str
    username: str
    policy_id: str
    policy_name: str
    next_rotation_date: datetime
    reminder_date: datetime
    days_until_rotation: int
    days_until_reminder: int


@dataclass(frozen=True, slots=True)
class RotationHistoryPage:
    records: List[RotationRecord]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


def _days_until(target: datetime, now: datetime) -> int:
    return math.ceil((target - now) / _ONE_DAY)


class RotationScheduler:
    """
    Rotation policies, scheduling and completion.

    Usage:
        scheduler = RotationScheduler(db, cipher, policy_engine, audit=audit_log)

        record = scheduler.schedule_rotation(cred_id, when, actor="alice")
        scheduler.complete_rotation(record.id, "N3w-S3cret!Value", actor="alice")

        for cred_id in scheduler.find_due_for_rotation():
            scheduler.auto_rotate_password(cred_id, actor="rotation-job")
    """

    def __init__(
        self,
        db: VaultDatabase,
        cipher: SecretCipher,
        policy_engine: PolicyEngine,
        history: Optional[HistoryStore] = None,
        config: Optional[RotationConfig] = None,
        audit: Optional[AuditSink] = None,
    ) -> None:
        self._db = db
        self._cipher = cipher
        self._policy_engine = policy_engine
        self._credentials = CredentialRepository(db)
        self._rotations = RotationStore(db)
        self._history = history or HistoryStore(db)
        self._config = config or RotationConfig()
        self._audit: AuditSink = audit or NullAuditSink()

    # Rotation policies

    def create_policy(
        self,
        name: str,
        rotation_days: int,
        actor: str,
        reminder_days: int = 7,
        auto_rotate: bool = False,
        require_approval: bool = False,
        description: Optional[str] = None,
    ) -> RotationPolicy:
        """
        Create a rotation policy owned by actor.

        Raises:
            ValidationError: If reminder_days is not below rotation_days
        """
        policy = RotationPolicy(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            rotation_days=rotation_days,
            reminder_days=reminder_days,
            auto_rotate=auto_rotate,
            require_approval=require_approval,
            owner_id=actor,
        )
        self._rotations.add_policy(policy)

        logger.info("Rotation policy %s created", policy.id)
        self._audit.log(
            AuditEventType.ROTATION_POLICY_CREATED,
            AuditSeverity.INFO,
            f"Rotation policy '{name}' created",
            user_id=actor,
            details={"policy_id": policy.id, "rotation_days": rotation_days},
        )
        return policy

    def update_policy(self, policy_id: str, actor: str, **changes: Any) -> RotationPolicy:
        """
        Update selected fields of a rotation policy.

        Raises:
            NotFoundError: If the policy does not exist
            ValidationError: If the result breaks a schedule invariant
            TypeError: If a field is not updatable
        """
        unknown = set(changes) - _POLICY_FIELDS
        if unknown:
            raise TypeError(f"Cannot update rotation policy fields: {sorted(unknown)}")

        with self._db.transaction() as conn:
            current = self._rotations.require_policy(policy_id, conn=conn)
            updated = replace(current, **changes)
            self._rotations.update_policy(updated, conn=conn)

        self._audit.log(
            AuditEventType.ROTATION_POLICY_UPDATED,
            AuditSeverity.INFO,
            f"Rotation policy '{updated.name}' updated",
            user_id=actor,
            details={"policy_id": policy_id, "fields": sorted(changes)},
        )
        return updated

    def delete_policy(self, policy_id: str, actor: str) -> int:
        """
        Delete a policy, detaching it from every credential.

        Returns:
            Number of credentials that were detached
        """
        with self._db.transaction() as conn:
            policy = self._rotations.require_policy(policy_id, conn=conn)
            detached = self._credentials.detach_policy(policy_id, conn=conn)
            self._rotations.delete_policy(policy_id, conn=conn)

        logger.info("Rotation policy %s deleted (%d credentials detached)", policy_id, detached)
        self._audit.log(
            AuditEventType.ROTATION_POLICY_DELETED,
            AuditSeverity.WARNING,
            f"Rotation policy '{policy.name}' deleted",
            user_id=actor,
            details={"policy_id": policy_id, "detached_credentials": detached},
        )
        return detached

    def list_policies(self, owner_id: Optional[str] = None) -> List[RotationPolicy]:
        return self._rotations.list_policies(owner_id)

    def assign_policy(self, credential_id: str, policy_id: Optional[str], actor: str) -> None:
        """
        Attach a policy to a credential, or detach with policy_id=None.

        Raises:
            NotFoundError: If the credential or policy does not exist
        """
        with self._db.transaction() as conn:
            self._credentials.require(credential_id, conn=conn)
            if policy_id is not None:
                self._rotations.require_policy(policy_id, conn=conn)
            self._credentials.set_rotation_policy(credential_id, policy_id, conn=conn)

        if policy_id is None:
            event, description = AuditEventType.ROTATION_POLICY_REMOVED, "Rotation policy removed"
        else:
            event, description = AuditEventType.ROTATION_POLICY_ASSIGNED, "Rotation policy assigned"
        self._audit.log(
            event,
            AuditSeverity.INFO,
            description,
            user_id=actor,
            details={"credential_id": credential_id, "policy_id": policy_id},
        )

    # Rotation records

    def schedule_rotation(
        self,
        credential_id: str,
        scheduled_for: datetime,
        actor: str,
        notes: Optional[str] = None,
    ) -> RotationRecord:
        """
        Create a SCHEDULED rotation record.

        The record is POLICY-typed when the credential has a policy
        attached, SCHEDULED-typed otherwise.

        Raises:
            NotFoundError: If the credential does not exist
            InvalidStateError: If another rotation is already scheduled and
                multiple scheduled rotations are disabled
            ValidationError: If scheduled_for is a naive datetime
        """
        require_aware(scheduled_for, "scheduled_for")
        with self._db.transaction() as conn:
            credential = self._credentials.require(credential_id, conn=conn)
            if not self._config.allow_multiple_scheduled:
                if self._rotations.find_scheduled(credential_id, conn=conn):
                    raise InvalidStateError(
                        f"Credential '{credential_id}' already has a scheduled rotation"
                    )

            record = RotationRecord(
                id=str(uuid.uuid4()),
                credential_id=credential_id,
                policy_id=credential.rotation_policy_id,
                state=RotationState.SCHEDULED,
                rotation_type=(
                    RotationType.POLICY if credential.rotation_policy_id else RotationType.SCHEDULED
                ),
                scheduled_for=scheduled_for,
                notes=notes,
                created_by=actor,
            )
            self._rotations.add_record(record, conn=conn)

        logger.info("Rotation %s scheduled for credential %s", record.id, credential_id)
        self._audit.log(
            AuditEventType.PASSWORD_ROTATION_SCHEDULED,
            AuditSeverity.INFO,
            "Password rotation scheduled",
            user_id=actor,
            details={
                "rotation_id": record.id,
                "credential_id": credential_id,
                "scheduled_for": scheduled_for.isoformat(),
            },
        )
        return record

    def complete_rotation(
        self,
        rotation_id: str,
        new_secret: str,
        actor: str,
        notes: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> RotationRecord:
        """
        Complete a scheduled rotation with a caller-supplied secret.

        Args:
            rotation_id: SCHEDULED record to complete
            new_secret: Plaintext replacement secret
            actor: User completing the rotation
            notes: Optional completion notes
            tenant_id: Tenant whose password policy applies

        Returns:
            The COMPLETED record

        Raises:
            NotFoundError: If the record does not exist
            InvalidStateError: If the record is not SCHEDULED
            PolicyViolation: If new_secret breaks the password policy
            ReuseViolation: If new_secret matches a recent secret
        """
        record = self._rotations.require_record(rotation_id)
        if record.state.is_terminal:
            raise InvalidStateError(
                f"Rotation '{rotation_id}' is {record.state.value}, expected SCHEDULED"
            )

        config = self._policy_engine.resolve_policy(tenant_id)
        self._policy_engine.enforce(new_secret, record.credential_id, config)

        completed = self._apply_rotation(record, new_secret, actor, notes)

        logger.info("Rotation %s completed for credential %s", rotation_id, record.credential_id)
        self._audit.log(
            AuditEventType.PASSWORD_ROTATED,
            AuditSeverity.INFO,
            "Password rotated",
            user_id=actor,
            details={"rotation_id": rotation_id, "credential_id": record.credential_id},
        )
        return completed

    def cancel_rotation(self, rotation_id: str, actor: str) -> RotationRecord:
        """
        Cancel a scheduled rotation.

        Raises:
            NotFoundError: If the record does not exist
            InvalidStateError: If the record is not SCHEDULED
        """
        with self._db.transaction() as conn:
            record = self._rotations.require_record(rotation_id, conn=conn)
            if not self._rotations.transition(
                rotation_id, RotationState.SCHEDULED, RotationState.CANCELLED, conn=conn
            ):
                raise InvalidStateError(
                    f"Rotation '{rotation_id}' is {record.state.value}, expected SCHEDULED"
                )

        record.state = RotationState.CANCELLED
        logger.info("Rotation %s cancelled", rotation_id)
        self._audit.log(
            AuditEventType.PASSWORD_ROTATION_CANCELLED,
            AuditSeverity.INFO,
            "Password rotation cancelled",
            user_id=actor,
            details={"rotation_id": rotation_id, "credential_id": record.credential_id},
        )
        return record

    def auto_rotate_password(
        self,
        credential_id: str,
        actor: str,
        notes: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> AutoRotationResult:
        """
        Generate and install a new secret for a credential.

        Uses the oldest SCHEDULED record when one exists, otherwise creates
        an AUTO record inside the same transaction as the rotation.

        Raises:
            NotFoundError: If the credential does not exist
            InvalidStateError: If the credential has no active auto-rotate policy
            ReuseViolation: If every generated candidate matched history
        """
        credential = self._credentials.require(credential_id)
        if credential.rotation_policy_id is None:
            raise InvalidStateError(f"Credential '{credential_id}' has no rotation policy")

        policy = self._rotations.require_policy(credential.rotation_policy_id)
        if not policy.is_active:
            raise InvalidStateError(f"Rotation policy '{policy.id}' is not active")
        if not policy.auto_rotate:
            raise InvalidStateError(f"Rotation policy '{policy.id}' does not allow auto-rotation")

        config = self._policy_engine.resolve_policy(tenant_id)
        new_secret = self._generate_unused(credential_id, config)

        scheduled = self._rotations.find_scheduled(credential_id)
        if scheduled:
            record = scheduled[0]
        else:
            record = RotationRecord(
                id=str(uuid.uuid4()),
                credential_id=credential_id,
                policy_id=policy.id,
                state=RotationState.SCHEDULED,
                rotation_type=RotationType.AUTO,
                scheduled_for=utcnow(),
                notes=notes,
                created_by=actor,
            )

        completed = self._apply_rotation(
            record,
            new_secret,
            actor,
            notes or "Automatically rotated",
            create_record=not scheduled,
        )

        logger.info("Credential %s auto-rotated (rotation %s)", credential_id, record.id)
        self._audit.log(
            AuditEventType.PASSWORD_AUTO_ROTATED,
            AuditSeverity.INFO,
            "Password automatically rotated",
            user_id=actor,
            details={
                "rotation_id": record.id,
                "credential_id": credential_id,
                "policy_id": policy.id,
            },
        )
        return AutoRotationResult(record=completed, new_secret=new_secret)

    def _generate_unused(self, credential_id: str, config: PasswordPolicyConfig) -> str:
        """Generate a policy-compliant secret not present in recent history."""
        for _ in range(self._config.generation_attempts):
            candidate = generate_for_policy(config, self._config.generated_length)
            if not self._policy_engine.validate(candidate, config).is_valid:
                continue
            if self._policy_engine.check_reuse(candidate, credential_id, config).can_reuse:
                return candidate

        raise ReuseViolation(
            f"Could not generate an unused password after {self._config.generation_attempts} attempts"
        )

    def _apply_rotation(
        self,
        record: RotationRecord,
        new_secret: str,
        actor: str,
        notes: Optional[str],
        create_record: bool = False,
    ) -> RotationRecord:
        """
        Append history, replace the secret and close the record atomically.

        Raises:
            InvalidStateError: If the record left SCHEDULED concurrently
        """
        now = utcnow()
        new_envelope = self._cipher.encrypt(new_secret, Purpose.PASSWORD)

        with self._db.transaction() as conn:
            if create_record:
                self._rotations.add_record(record, conn=conn)

            credential = self._credentials.require(record.credential_id, conn=conn)
            self._history.append(
                credential.id, credential, actor, ChangeType.UPDATE, conn=conn
            )
            self._credentials.update_secret(
                credential.id,
                new_envelope,
                calculate_strength(new_secret),
                conn=conn,
                updated_at=now,
            )
            if not self._rotations.transition(
                record.id,
                RotationState.SCHEDULED,
                RotationState.COMPLETED,
                conn=conn,
                completed_at=now,
                notes=notes,
                previous_secret=credential.encrypted_secret,
                new_secret=new_envelope,
            ):
                raise InvalidStateError(f"Rotation '{record.id}' is no longer SCHEDULED")

        record.state = RotationState.COMPLETED
        record.completed_at = now
        record.notes = notes or record.notes
        record.previous_secret = credential.encrypted_secret
        record.new_secret = new_envelope
        return record

    # Reminders and due detection

    def _last_rotated(self, credential: Credential) -> datetime:
        return self._rotations.last_completed_at(credential.id) or credential.created_at

    @staticmethod
    def is_reminder_due(
        credential: Credential,
        policy: RotationPolicy,
        last_rotated: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Whether a credential has entered its policy's reminder window.

        last_rotated defaults to the credential's creation time.
        """
        if not policy.is_active:
            return False
        now = require_aware(now, "now") if now is not None else utcnow()
        if last_rotated is None:
            last_rotated = credential.created_at
        require_aware(last_rotated, "last_rotated")
        return now - last_rotated >= timedelta(days=policy.rotation_days - policy.reminder_days)

    def get_reminders(
        self,
        owner_id: str,
        days_ahead: int = 30,
        now: Optional[datetime] = None,
    ) -> List[RotationReminder]:
        """
        Upcoming rotation reminders for an owner's credentials.

        Includes credentials under an active policy whose reminder date
        falls between now and now + days_ahead. Credentials rotated within
        the grace window are skipped. Sorted by reminder date.
        """
        now = require_aware(now, "now") if now is not None else utcnow()
        horizon = now + timedelta(days=days_ahead)
        grace = timedelta(hours=self._config.recent_rotation_grace_hours)
        policies: dict[str, Optional[RotationPolicy]] = {}
        reminders: List[RotationReminder] = []

        for credential in self._credentials.list_by_owner(owner_id):
            policy_id = credential.rotation_policy_id
            if policy_id is None:
                continue
            if policy_id not in policies:
                policies[policy_id] = self._rotations.get_policy(policy_id)
            policy = policies[policy_id]
            if policy is None or not policy.is_active:
                continue

            last_completed = self._rotations.last_completed_at(credential.id)
            if last_completed is not None and now - last_completed < grace:
                continue

            last_rotated = last_completed or credential.created_at
            next_rotation = last_rotated + timedelta(days=policy.rotation_days)
            reminder_date = next_rotation - timedelta(days=policy.reminder_days)

            if now <= reminder_date <= horizon:
                reminders.append(RotationReminder(
                    credential_id=credential.id,
                    credential_name=credential.name,
                    username=credential.username,
                    policy_id=policy.id,
                    policy_name=policy.name,
                    next_rotation_date=next_rotation,
                    reminder_date=reminder_date,
                    days_until_rotation=_days_until(next_rotation, now),
                    days_until_reminder=_days_until(reminder_date, now),
                ))

        reminders.sort(key=lambda r: r.reminder_date)
        return reminders

    def find_due_for_rotation(self, now: Optional[datetime] = None) -> List[str]:
        """Ids of credentials whose active auto-rotate policy has elapsed."""
        now = require_aware(now, "now") if now is not None else utcnow()
        due: List[str] = []
        policies: dict[str, Optional[RotationPolicy]] = {}

        for credential in self._credentials.list_with_policy():
            policy_id = credential.rotation_policy_id
            if policy_id not in policies:
                policies[policy_id] = self._rotations.get_policy(policy_id)
            policy = policies[policy_id]
            if policy is None or not policy.is_active or not policy.auto_rotate:
                continue

            if now - self._last_rotated(credential) >= timedelta(days=policy.rotation_days):
                due.append(credential.id)

        logger.debug("%d credential(s) due for automatic rotation", len(due))
        return due

    def rotation_history(
        self,
        credential_id: Optional[str] = None,
        policy_id: Optional[str] = None,
        state: Optional[RotationState] = None,
        owner_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> RotationHistoryPage:
        """Filtered, paginated rotation records, newest first."""
        records, total = self._rotations.list_records(
            credential_id=credential_id,
            policy_id=policy_id,
            state=state,
            owner_id=owner_id,
            page=page,
            page_size=page_size,
        )
        return RotationHistoryPage(records=records, total=total, page=page, page_size=page_size)
