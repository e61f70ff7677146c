"""
CredGuard Secret Cipher
=======================

Field-level encryption for stored secrets.

Architecture:
    1. PBKDF2-HMAC-SHA256: one key per purpose from raw key material
    2. AES-256-CBC with PKCS7 padding: envelope "<ivHex>:<cipherHex>"

Security Properties:
    - Fresh random IV per encryption
    - Purpose salts keep email and password keys distinct
    - Keys derived once and held by the cipher instance

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from credguard.core.crypto.cipher import SecretCipher
from credguard.core.crypto.kdf import Purpose, derive_key_pbkdf2, validate_key_material

__all__ = [
    "SecretCipher",
    "Purpose",
    "derive_key_pbkdf2",
    "validate_key_material",
]
