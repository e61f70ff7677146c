"""
CredGuard Security Module
=========================

Password policy, rotation lifecycle, secret generation and audit.

Components:
- policy.py: Policy validation, reuse and expiration checks
- rotation.py: Rotation policies and the rotation state machine
- generator.py: Policy-compliant secret generation
- versions.py: Credential creation and restore from history
- audit.py: Hash-chained audit log
"""

from credguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    AuditSink,
    TamperAwareAuditLog,
)
from credguard.security.generator import generate_for_policy, generate_password
from credguard.security.policy import (
    PolicyEngine,
    ReuseCheckResult,
    ValidationResult,
    calculate_strength,
)
from credguard.security.rotation import AutoRotationResult, RotationScheduler
from credguard.security.versions import CredentialVersions

__all__ = [
    "AuditEventType",
    "AuditSeverity",
    "AuditSink",
    "TamperAwareAuditLog",
    "generate_for_policy",
    "generate_password",
    "PolicyEngine",
    "ReuseCheckResult",
    "ValidationResult",
    "calculate_strength",
    "AutoRotationResult",
    "RotationScheduler",
    "CredentialVersions",
]
