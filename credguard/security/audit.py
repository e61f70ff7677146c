"""
Tamper-Aware Audit System
=========================

Append-only audit logging with integrity verification.

Events are written as hash-chained JSON lines. Descriptions and details
pass through the log redaction filter before they are hashed, so no
plaintext or envelope ever reaches the audit file.
"""

from __future__ import annotations

import hashlib
import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Final, List, Optional, Protocol

from credguard.core.logging import SecureLogFilter, get_secure_logger
from credguard.core.models import utcnow

logger = get_secure_logger(__name__)

GENESIS_HASH: Final[str] = "genesis"


class AuditSeverity(Enum):
    """Audit event severity levels."""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AuditEventType(Enum):
    """Types of auditable events."""
    # Credentials
    PASSWORD_CREATED = "PASSWORD_CREATED"
    PASSWORD_RESTORED = "PASSWORD_RESTORED"
    PASSWORD_BULK_DELETE = "PASSWORD_BULK_DELETE"
    PASSWORD_BULK_MERGE = "PASSWORD_BULK_MERGE"

    # Rotation policies
    ROTATION_POLICY_CREATED = "ROTATION_POLICY_CREATED"
    ROTATION_POLICY_UPDATED = "ROTATION_POLICY_UPDATED"
    ROTATION_POLICY_DELETED = "ROTATION_POLICY_DELETED"
    ROTATION_POLICY_ASSIGNED = "ROTATION_POLICY_ASSIGNED"
    ROTATION_POLICY_REMOVED = "ROTATION_POLICY_REMOVED"

    # Rotations
    PASSWORD_ROTATION_SCHEDULED = "PASSWORD_ROTATION_SCHEDULED"
    PASSWORD_ROTATED = "PASSWORD_ROTATED"
    PASSWORD_AUTO_ROTATED = "PASSWORD_AUTO_ROTATED"
    PASSWORD_ROTATION_CANCELLED = "PASSWORD_ROTATION_CANCELLED"

    # Breach screening
    PASSWORD_BREACH_CHECKED = "PASSWORD_BREACH_CHECKED"
    PASSWORD_BREACH_DETECTED = "PASSWORD_BREACH_DETECTED"


class AuditSink(Protocol):
    """Anything that accepts audit events."""

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


@dataclass
class AuditEvent:
    """An auditable security event."""
    event_type: AuditEventType
    severity: AuditSeverity
    timestamp: datetime
    user_id: Optional[str] = None
    description: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    # Computed fields
    event_id: str = field(default="")
    previous_hash: str = field(default="")
    event_hash: str = field(default="")

    def __post_init__(self) -> None:
        if not self.event_id:
            self.event_id = hashlib.sha256(
                f"{self.timestamp.isoformat()}{self.event_type.value}{os.urandom(8).hex()}".encode()
            ).hexdigest()[:16]

    def _hashable(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }

    def compute_hash(self, previous_hash: str) -> str:
        """Compute event hash for chain integrity."""
        self.previous_hash = previous_hash
        self.event_hash = hashlib.sha256(
            json.dumps(self._hashable(), sort_keys=True, default=str).encode()
        ).hexdigest()
        return self.event_hash

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        data = self._hashable()
        data["event_hash"] = self.event_hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AuditEvent:
        return cls(
            event_type=AuditEventType(data["event_type"]),
            severity=AuditSeverity(data["severity"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            user_id=data.get("user_id"),
            description=data.get("description", ""),
            details=data.get("details") or {},
            event_id=data["event_id"],
            previous_hash=data.get("previous_hash", ""),
            event_hash=data.get("event_hash", ""),
        )


class TamperAwareAuditLog:
    """
    Append-only audit log with tamper detection.

    Features:
    - Chained hashes for integrity
    - Append-only (no deletion)
    - JSON Lines format
    - No sensitive plaintext
    """

    def __init__(self, log_path: Path) -> None:
        self._log_path = Path(log_path)
        self._lock = threading.Lock()
        self._redactor = SecureLogFilter()
        self._last_hash = GENESIS_HASH
        self._event_count = 0

        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._load_chain()

    @property
    def event_count(self) -> int:
        return self._event_count

    def _load_chain(self) -> None:
        """Resume the chain from the last event on disk."""
        if not self._log_path.exists():
            return

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    event = json.loads(line)
                    self._last_hash = event.get("event_hash", self._last_hash)
                    self._event_count += 1

    def _redact(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._redactor.sanitize(value)
        if isinstance(value, dict):
            return {k: self._redact(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._redact(v) for v in value]
        return value

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log an audit event.

        Returns:
            Event ID
        """
        event = AuditEvent(
            event_type=event_type,
            severity=severity,
            timestamp=utcnow(),
            user_id=user_id,
            description=self._redact(description),
            details=self._redact(details or {}),
        )

        with self._lock:
            event.compute_hash(self._last_hash)

            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")
                f.flush()
                os.fsync(f.fileno())

            self._last_hash = event.event_hash
            self._event_count += 1

        logger.debug("Audit event %s recorded (%s)", event.event_id, event_type.value)
        return event.event_id

    def verify_integrity(self) -> tuple[bool, int]:
        """
        Verify log chain integrity.

        Each line must link to its predecessor and its stored hash must
        match a recomputation over its contents.

        Returns:
            Tuple of (is_valid, number of events verified before any break)
        """
        if not self._log_path.exists():
            return True, 0

        previous_hash = GENESIS_HASH
        count = 0

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                try:
                    data = json.loads(line)
                    event = AuditEvent.from_dict(data)
                except (ValueError, KeyError):
                    logger.warning("Audit log line %d is malformed", count + 1)
                    return False, count

                if event.previous_hash != previous_hash:
                    return False, count

                stored_hash = event.event_hash
                if event.compute_hash(previous_hash) != stored_hash:
                    return False, count

                previous_hash = stored_hash
                count += 1

        return True, count

    def get_events(
        self,
        since: Optional[datetime] = None,
        event_type: Optional[AuditEventType] = None,
        severity: Optional[AuditSeverity] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Get filtered events (read-only), oldest first."""
        events: List[Dict[str, Any]] = []

        if not self._log_path.exists():
            return events

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                event = json.loads(line)

                if since and datetime.fromisoformat(event["timestamp"]) < since:
                    continue
                if event_type and event["event_type"] != event_type.value:
                    continue
                if severity and event["severity"] != severity.value:
                    continue
                if user_id and event.get("user_id") != user_id:
                    continue

                events.append(event)
                if len(events) >= limit:
                    break

        return events


class NullAuditSink:
    """Audit sink that discards events."""

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        return ""
