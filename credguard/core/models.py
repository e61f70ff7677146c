"""
Domain Models
=============

Dataclasses for credentials, history snapshots, rotation policies,
rotation records and tenant password policy.

Security Notes:
- Secret fields only ever hold envelopes, never plaintext
- repr() never exposes envelopes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from credguard.core.errors import ValidationError
from credguard.core.constants import (
    DEFAULT_MIN_PASSWORD_LENGTH,
    MAX_PASSWORD_LENGTH,
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def require_aware(value: datetime, name: str) -> datetime:
    """Reject naive datetimes; stored and compared times are always UTC-aware."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{name} must be a timezone-aware datetime, got naive {value.isoformat()}")
    return value


class Strength(Enum):
    """Credential secret strength rating."""
    WEAK = "WEAK"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"


class ChangeType(Enum):
    """Kind of change that produced a history snapshot."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    RESTORE = "RESTORE"


class RotationState(Enum):
    """Rotation record lifecycle states. COMPLETED and CANCELLED are terminal."""
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not RotationState.SCHEDULED


class RotationType(Enum):
    """How a rotation record came about."""
    SCHEDULED = "SCHEDULED"
    POLICY = "POLICY"
    MANUAL = "MANUAL"
    AUTO = "AUTO"


@dataclass
class Credential:
    """
    A stored secret plus metadata.

    Note: encrypted_secret and encrypted_totp_secret are never exposed in repr.
    """
    id: str
    name: str
    username: str
    encrypted_secret: str
    owner_id: str
    strength: Strength = Strength.MEDIUM
    encrypted_totp_secret: Optional[str] = None
    expires_at: Optional[datetime] = None
    rotation_policy_id: Optional[str] = None
    folder_id: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def has_totp(self) -> bool:
        return self.encrypted_totp_secret is not None

    def __repr__(self) -> str:
        """Safe representation without envelopes."""
        return (
            f"Credential(id={self.id!r}, name={self.name!r}, "
            f"strength={self.strength.name}, policy={self.rotation_policy_id!r})"
        )


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """
    Immutable snapshot of a credential at a point in time.

    Holds the full encrypted field set so the prior value is always
    recoverable by restore flows.
    """
    id: str
    credential_id: str
    name: str
    username: str
    encrypted_secret: str
    strength: Strength
    change_type: ChangeType
    changed_by: str
    created_at: datetime
    encrypted_totp_secret: Optional[str] = None
    expires_at: Optional[datetime] = None
    folder_id: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"HistoryEntry(id={self.id!r}, credential_id={self.credential_id!r}, "
            f"change_type={self.change_type.name}, created_at={self.created_at.isoformat()})"
        )


@dataclass
class RotationPolicy:
    """Schedule governing how often a credential's secret must be replaced."""
    id: str
    name: str
    rotation_days: int
    reminder_days: int = 7
    auto_rotate: bool = False
    require_approval: bool = False
    is_active: bool = True
    owner_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate schedule invariants."""
        if self.rotation_days < 1:
            raise ValidationError("Rotation days must be at least 1")
        if self.reminder_days < 0:
            raise ValidationError("Reminder days must be at least 0")
        if self.reminder_days >= self.rotation_days:
            raise ValidationError("Reminder days must be less than rotation days")


@dataclass
class RotationRecord:
    """Auditable record of one secret replacement."""
    id: str
    credential_id: str
    state: RotationState
    rotation_type: RotationType
    created_by: str
    policy_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    previous_secret: Optional[str] = None
    new_secret: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def __repr__(self) -> str:
        return (
            f"RotationRecord(id={self.id!r}, credential_id={self.credential_id!r}, "
            f"state={self.state.name}, type={self.rotation_type.name})"
        )


@dataclass(frozen=True, slots=True)
class PasswordPolicyConfig:
    """Per-tenant password policy."""
    min_length: int = DEFAULT_MIN_PASSWORD_LENGTH
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_numbers: bool = True
    require_special: bool = True
    expiration_days: Optional[int] = None
    prevent_reuse_count: int = 0
    require_change_on_first_login: bool = False
    require_change_after_days: Optional[int] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.min_length < 1 or self.min_length > MAX_PASSWORD_LENGTH:
            raise ValidationError(
                f"Minimum length must be between 1 and {MAX_PASSWORD_LENGTH}"
            )
        if self.prevent_reuse_count < 0:
            raise ValidationError("Reuse prevention count cannot be negative")
        if self.expiration_days is not None and self.expiration_days < 1:
            raise ValidationError("Expiration days must be at least 1")
        if self.require_change_after_days is not None and self.require_change_after_days < 1:
            raise ValidationError("Change-after days must be at least 1")

    @classmethod
    def secure_default(cls) -> PasswordPolicyConfig:
        """Policy applied when a tenant has no active configuration."""
        return cls()
