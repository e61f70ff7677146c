"""
Error Taxonomy
==============

Exceptions raised by the credential security core.

Recoverable policy failures carry the full list of violated rules so
callers can present every problem at once. Decryption and state errors
are never downgraded to a valid result.
"""

from __future__ import annotations

from typing import Iterable, Optional


class CredentialCoreError(Exception):
    """Base class for all credential core errors."""
    pass


class ValidationError(CredentialCoreError, ValueError):
    """Raised when a value fails validation.

    Attributes:
        errors: Every violated rule, in evaluation order
    """

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None) -> None:
        self.errors: list[str] = list(errors) if errors else [message]
        super().__init__(message)


class PolicyViolation(ValidationError):
    """Raised when a candidate secret violates the password policy."""

    def __init__(self, errors: Iterable[str]) -> None:
        errors = list(errors)
        super().__init__("; ".join(errors), errors)


class ReuseViolation(ValidationError):
    """Raised when a candidate secret matches a recent historical secret."""
    pass


class DecryptionError(CredentialCoreError):
    """Raised for a malformed envelope or a purpose/key mismatch."""
    pass


class KeyMaterialError(CredentialCoreError):
    """Raised when raw key material is missing, malformed or a placeholder."""
    pass


class InvalidStateError(CredentialCoreError):
    """Raised when a rotation action does not match the record's state."""
    pass


class NotFoundError(CredentialCoreError, LookupError):
    """Raised when a credential, policy or rotation record does not exist."""
    pass


class ExternalServiceError(CredentialCoreError):
    """Raised by the breach transport layer; callers fail open on it."""
    pass


class ScanLimitExceeded(CredentialCoreError):
    """Raised when a pairwise scan would exceed the configured entry bound."""

    def __init__(self, count: int, limit: int) -> None:
        self.count = count
        self.limit = limit
        super().__init__(
            f"Similarity scan over {count} entries exceeds limit of {limit}; "
            "paginate with offset/limit"
        )


class StorageBusyError(CredentialCoreError):
    """Raised when the database write lock cannot be taken within the busy timeout."""
    pass
