"""
Security Constants
==================

Defines security-related constants used throughout the credential core.
These values are part of the persisted format and key derivation
contract and should not be modified without a migration plan.
"""

from typing import Final

# Password Requirements
DEFAULT_MIN_PASSWORD_LENGTH: Final[int] = 12
MAX_PASSWORD_LENGTH: Final[int] = 128
SPECIAL_CHARACTERS: Final[str] = "!@#$%^&*()_+-=[]{}|;:,.<>?"

# Strength thresholds
STRONG_PASSWORD_LENGTH: Final[int] = 16
WEAK_PASSWORD_LENGTH: Final[int] = 8

# Encryption Settings
ENCRYPTION_ALGORITHM: Final[str] = "AES-256-CBC"
KEY_LENGTH_BYTES: Final[int] = 32  # 256 bits
IV_LENGTH_BYTES: Final[int] = 16  # AES block size
RAW_KEY_LENGTH: Final[int] = 32  # characters of raw key material

# Key Derivation
KEY_DERIVATION_FUNCTION: Final[str] = "PBKDF2-SHA256"
KDF_ITERATIONS: Final[int] = 100_000
EMAIL_KEY_SALT: Final[bytes] = b"email_encryption_salt"
PASSWORD_KEY_SALT: Final[bytes] = b"password_encryption_salt"

# Raw key values that must never reach production
PLACEHOLDER_KEYS: Final[frozenset[str]] = frozenset({
    "default_dev_key_32bytes_long!!",
    "credguard_dev_key_do_not_use_32!",
    "12345678901234567890123456789012",
    "00000000000000000000000000000000",
    "change_me_change_me_change_me_32",
    "your_32_character_key_goes_here!",
})

# Development fallback, rejected in production
DEVELOPMENT_KEY: Final[str] = "credguard_dev_key_do_not_use_32!"

# Breach corpus (k-anonymity range API)
BREACH_API_URL: Final[str] = "https://api.pwnedpasswords.com"
BREACH_HASH_PREFIX_LENGTH: Final[int] = 5
BREACH_REQUEST_DELAY_SECONDS: Final[float] = 0.7

# Similarity
DEFAULT_SIMILARITY_THRESHOLD: Final[float] = 0.8
COMMON_PATTERN_THRESHOLD: Final[float] = 0.75
COMMON_PATTERN_MIN_BASE: Final[int] = 4
