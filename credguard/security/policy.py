"""
Password Policy Engine
======================

Validates candidate secrets against a tenant's password policy, checks
reuse against credential history and computes expiration.

Security Notes:
- Every violated rule is reported, not just the first
- Historical secrets are decrypted in memory only and compared in
  constant time
- Undecryptable history rows are counted, never silently dropped
"""

from __future__ import annotations

import hmac
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Final, List, Optional, Pattern

from credguard.core.constants import STRONG_PASSWORD_LENGTH, WEAK_PASSWORD_LENGTH
from credguard.core.crypto.cipher import SecretCipher
from credguard.core.crypto.kdf import Purpose
from credguard.core.errors import DecryptionError, PolicyViolation, ReuseViolation
from credguard.core.logging import get_secure_logger
from credguard.core.models import (
    ChangeType,
    Credential,
    PasswordPolicyConfig,
    Strength,
    require_aware,
    utcnow,
)
from credguard.db.history import HistoryStore
from credguard.db.settings import PolicySettingsStore

logger = get_secure_logger(__name__)

_UPPERCASE: Final[Pattern[str]] = re.compile(r"[A-Z]")
_LOWERCASE: Final[Pattern[str]] = re.compile(r"[a-z]")
_DIGIT: Final[Pattern[str]] = re.compile(r"[0-9]")
_SPECIAL: Final[Pattern[str]] = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating a candidate against a policy."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ReuseCheckResult:
    """
    Outcome of a reuse check.

    Attributes:
        can_reuse: False if the candidate matches a recent secret
        reason: Explanation when can_reuse is False
        skipped_count: History rows that could not be decrypted
    """
    can_reuse: bool
    reason: Optional[str] = None
    skipped_count: int = 0


@dataclass(frozen=True, slots=True)
class ExpirationCheck:
    is_expired: bool
    expires_at: Optional[datetime]
    days_until_expiration: Optional[int]


@dataclass(frozen=True, slots=True)
class ChangeRequirement:
    requires_change: bool
    reason: Optional[str] = None


def calculate_strength(secret: str) -> Strength:
    """
    Rate a secret.

    STRONG: at least 16 characters with all four character classes.
    WEAK: fewer than 8 characters. MEDIUM otherwise.
    """
    if len(secret) < WEAK_PASSWORD_LENGTH:
        return Strength.WEAK
    if (
        len(secret) >= STRONG_PASSWORD_LENGTH
        and _UPPERCASE.search(secret)
        and _LOWERCASE.search(secret)
        and _DIGIT.search(secret)
        and _SPECIAL.search(secret)
    ):
        return Strength.STRONG
    return Strength.MEDIUM


class PolicyEngine:
    """
    Enforces password policy for credential mutations.

    Usage:
        engine = PolicyEngine(cipher, history, settings)
        config = engine.resolve_policy(tenant_id)

        result = engine.validate(candidate, config)
        if not result.is_valid:
            show(result.errors)

        reuse = engine.check_reuse(candidate, credential_id, config)
    """

    __slots__ = ("_cipher", "_history", "_settings")

    def __init__(
        self,
        cipher: SecretCipher,
        history: HistoryStore,
        settings: Optional[PolicySettingsStore] = None,
    ) -> None:
        self._cipher = cipher
        self._history = history
        self._settings = settings

    def resolve_policy(self, tenant_id: Optional[str]) -> PasswordPolicyConfig:
        """
        Policy for a tenant. Absent or inactive configuration resolves to
        the secure default.
        """
        if tenant_id is None or self._settings is None:
            return PasswordPolicyConfig.secure_default()

        config = self._settings.get(tenant_id)
        if config is None or not config.is_active:
            return PasswordPolicyConfig.secure_default()
        return config

    @staticmethod
    def validate(candidate: str, config: PasswordPolicyConfig) -> ValidationResult:
        """
        Validate a candidate secret, accumulating every violated rule.

        Args:
            candidate: Plaintext candidate secret
            config: Policy to apply

        Returns:
            ValidationResult with all errors in rule order
        """
        errors: List[str] = []

        if len(candidate) < config.min_length:
            errors.append(f"Password must be at least {config.min_length} characters long")

        if config.require_uppercase and not _UPPERCASE.search(candidate):
            errors.append("Password must contain at least one uppercase letter (A-Z)")

        if config.require_lowercase and not _LOWERCASE.search(candidate):
            errors.append("Password must contain at least one lowercase letter (a-z)")

        if config.require_numbers and not _DIGIT.search(candidate):
            errors.append("Password must contain at least one number (0-9)")

        if config.require_special and not _SPECIAL.search(candidate):
            errors.append("Password must contain at least one special character (!@#$%...)")

        return ValidationResult(is_valid=not errors, errors=errors)

    def check_reuse(
        self,
        candidate: str,
        credential_id: str,
        config: PasswordPolicyConfig,
    ) -> ReuseCheckResult:
        """
        Check a candidate against the credential's most recent secrets.

        Loads prevent_reuse_count snapshots, newest first. A snapshot that
        fails to decrypt is skipped and counted rather than aborting the
        check.
        """
        if config.prevent_reuse_count <= 0:
            return ReuseCheckResult(can_reuse=True)

        entries = self._history.query(
            credential_id, limit=config.prevent_reuse_count, newest_first=True
        )
        candidate_bytes = candidate.encode("utf-8")
        skipped = 0

        for entry in entries:
            try:
                previous = self._cipher.decrypt(entry.encrypted_secret, Purpose.PASSWORD)
            except DecryptionError:
                skipped += 1
                continue
            if hmac.compare_digest(previous.encode("utf-8"), candidate_bytes):
                return ReuseCheckResult(
                    can_reuse=False,
                    reason=(
                        "This password was used recently. You cannot reuse your last "
                        f"{config.prevent_reuse_count} password(s)."
                    ),
                    skipped_count=skipped,
                )

        if skipped:
            logger.warning(
                "Reuse check for credential %s skipped %d undecryptable history row(s)",
                credential_id, skipped,
            )
        return ReuseCheckResult(can_reuse=True, skipped_count=skipped)

    @staticmethod
    def check_expiration(
        reference_date: datetime,
        config: PasswordPolicyConfig,
        now: Optional[datetime] = None,
    ) -> ExpirationCheck:
        """
        Expiration status of a secret last changed at reference_date.

        Never expires when the policy sets no expiration_days.

        Raises:
            ValidationError: If reference_date or now is a naive datetime
        """
        if not config.expiration_days:
            return ExpirationCheck(is_expired=False, expires_at=None, days_until_expiration=None)

        now = require_aware(now, "now") if now is not None else utcnow()
        reference_date = require_aware(reference_date, "reference_date")
        expires_at = reference_date + timedelta(days=config.expiration_days)
        remaining_days = math.ceil((expires_at - now) / timedelta(days=1))

        return ExpirationCheck(
            is_expired=now > expires_at,
            expires_at=expires_at,
            days_until_expiration=max(0, remaining_days),
        )

    def check_change_requirement(
        self,
        credential: Credential,
        config: PasswordPolicyConfig,
        now: Optional[datetime] = None,
    ) -> ChangeRequirement:
        """Whether policy forces a change of this credential's secret now."""
        if config.require_change_on_first_login:
            if self._history.count(credential.id, ChangeType.UPDATE) == 0:
                return ChangeRequirement(
                    requires_change=True,
                    reason="Password must be changed after first use",
                )

        if config.require_change_after_days:
            now = require_aware(now, "now") if now is not None else utcnow()
            due = credential.updated_at + timedelta(days=config.require_change_after_days)
            if now >= due:
                return ChangeRequirement(
                    requires_change=True,
                    reason=(
                        "Password has not been changed in "
                        f"{config.require_change_after_days} days"
                    ),
                )

        return ChangeRequirement(requires_change=False)

    def enforce(self, candidate: str, credential_id: Optional[str], config: PasswordPolicyConfig) -> None:
        """
        Raise if a candidate may not be stored.

        Raises:
            PolicyViolation: With the full list of violated rules
            ReuseViolation: If the candidate matches a recent secret
        """
        result = self.validate(candidate, config)
        if not result.is_valid:
            raise PolicyViolation(result.errors)

        if credential_id is not None:
            reuse = self.check_reuse(candidate, credential_id, config)
            if not reuse.can_reuse:
                raise ReuseViolation(reuse.reason or "Password was used recently")
