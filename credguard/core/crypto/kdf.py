"""
Key Derivation Functions
========================

Purpose-scoped key derivation for secret-field encryption.

Implements:
    - PBKDF2-HMAC-SHA256 derivation of a 256-bit key per purpose
    - Raw key material validation (fail-fast guard)
"""

from __future__ import annotations

import warnings
from enum import Enum
from typing import Final, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from credguard.core.constants import (
    DEVELOPMENT_KEY,
    EMAIL_KEY_SALT,
    KDF_ITERATIONS,
    KEY_LENGTH_BYTES,
    PASSWORD_KEY_SALT,
    PLACEHOLDER_KEYS,
    RAW_KEY_LENGTH,
)
from credguard.core.errors import KeyMaterialError


class Purpose(Enum):
    """Independent encryption purposes, each with its own derived key."""
    EMAIL = "email"
    PASSWORD = "password"

    @property
    def salt(self) -> bytes:
        return _PURPOSE_SALTS[self]


_PURPOSE_SALTS: Final[dict[Purpose, bytes]] = {
    Purpose.EMAIL: EMAIL_KEY_SALT,
    Purpose.PASSWORD: PASSWORD_KEY_SALT,
}


def derive_key_pbkdf2(
    key_material: str,
    salt: bytes,
    iterations: int = KDF_ITERATIONS,
    length: int = KEY_LENGTH_BYTES,
) -> bytes:
    """
    Derive a key from raw key material using PBKDF2-HMAC-SHA256.

    Args:
        key_material: Raw key material
        salt: Purpose-specific constant salt
        iterations: PBKDF2 iteration count
        length: Output key length

    Returns:
        Derived key bytes
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(key_material.encode("utf-8"))


def derive_purpose_key(
    key_material: str,
    purpose: Purpose,
    iterations: int = KDF_ITERATIONS,
) -> bytes:
    """Derive the 256-bit key for one purpose."""
    return derive_key_pbkdf2(key_material, purpose.salt, iterations=iterations)


def validate_key_material(
    key_material: Optional[str],
    production: bool,
    name: str = "PASSWORD_ENCRYPTION_KEY",
) -> str:
    """
    Check raw key material before any key is derived from it.

    Outside production a missing key falls back to the development key
    and a placeholder only warns. In production both are fatal. A key of
    the wrong length is always fatal.

    Args:
        key_material: Raw key material, or None if unset
        production: Whether this is a production deployment
        name: Variable name used in error messages

    Returns:
        The key material to use

    Raises:
        KeyMaterialError: If the key material is unusable
    """
    if not key_material:
        if production:
            raise KeyMaterialError(f"{name} must be set in production")
        warnings.warn(
            f"{name} is not set; using the development key. "
            "Never run like this in production.",
            SecurityWarning,
            stacklevel=2,
        )
        return DEVELOPMENT_KEY

    if len(key_material) != RAW_KEY_LENGTH:
        raise KeyMaterialError(
            f"{name} must be exactly {RAW_KEY_LENGTH} characters "
            f"(got {len(key_material)})"
        )

    if key_material in PLACEHOLDER_KEYS:
        if production:
            raise KeyMaterialError(f"{name} is a known placeholder value")
        warnings.warn(
            f"{name} is a known placeholder value",
            SecurityWarning,
            stacklevel=2,
        )

    return key_material


class SecurityWarning(UserWarning):
    """Warning for security-related issues."""
    pass
