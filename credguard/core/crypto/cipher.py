"""
Secret Field Cipher
===================

Encrypts and decrypts stored secret fields with purpose-scoped keys.

Security Properties:
    - 256-bit AES key per purpose, derived once at construction
    - Fresh 16-byte random IV per encryption (identical plaintexts
      never share ciphertext)
    - Compromise of one purpose key does not expose the other purpose

Envelope Format:
    "<ivHex>:<cipherHex>" where ivHex is 32 lowercase hex characters.

WARNING:
    - CBC mode carries no integrity tag. A wrong key usually fails the
      padding or UTF-8 check, but callers must not treat a successful
      decrypt as proof of authenticity.
"""

from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING, Final, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from credguard.core.constants import (
    ENCRYPTION_ALGORITHM,
    IV_LENGTH_BYTES,
    KDF_ITERATIONS,
    KEY_DERIVATION_FUNCTION,
    KEY_LENGTH_BYTES,
)
from credguard.core.crypto.kdf import Purpose, derive_purpose_key, validate_key_material
from credguard.core.errors import DecryptionError
from credguard.core.logging import get_secure_logger

if TYPE_CHECKING:
    from credguard.core.config import SecureConfig

logger = get_secure_logger(__name__)

_ENVELOPE_SEPARATOR: Final[str] = ":"
_BLOCK_SIZE_BITS: Final[int] = algorithms.AES.block_size  # 128
_HEX_DIGITS: Final[frozenset[str]] = frozenset(string.hexdigits)


def _is_hex(value: str) -> bool:
    return bool(value) and all(c in _HEX_DIGITS for c in value)


class SecretCipher:
    """
    Symmetric cipher for secret fields with one key per purpose.

    Keys are derived once in the constructor and held for the lifetime of
    the instance. Construct one per process and inject it into dependents.
    Instances are immutable after construction and safe to share between
    threads.

    Usage:
        cipher = SecretCipher(password_key="...32 chars...", production=True)
        envelope = cipher.encrypt("hunter2", Purpose.PASSWORD)
        assert cipher.decrypt(envelope, Purpose.PASSWORD) == "hunter2"
    """

    __slots__ = ("_keys",)

    def __init__(
        self,
        password_key: Optional[str] = None,
        email_key: Optional[str] = None,
        production: bool = False,
        iterations: int = KDF_ITERATIONS,
    ) -> None:
        """
        Initialize the cipher and derive both purpose keys.

        Args:
            password_key: Raw key material for the password purpose
            email_key: Raw key material for the email purpose (defaults to
                password_key; the purpose salts keep the keys distinct)
            production: Enforce the production key guard
            iterations: PBKDF2 iteration count

        Raises:
            KeyMaterialError: If key material fails the guard
        """
        password_material = validate_key_material(
            password_key, production, name="PASSWORD_ENCRYPTION_KEY"
        )
        if email_key is None:
            email_material = password_material
        else:
            email_material = validate_key_material(
                email_key, production, name="EMAIL_ENCRYPTION_KEY"
            )

        self._keys: dict[Purpose, bytes] = {
            Purpose.PASSWORD: derive_purpose_key(password_material, Purpose.PASSWORD, iterations),
            Purpose.EMAIL: derive_purpose_key(email_material, Purpose.EMAIL, iterations),
        }
        logger.debug("Secret cipher initialized (production=%s)", production)

    @classmethod
    def from_config(cls, config: SecureConfig) -> SecretCipher:
        """Build a cipher from SecureConfig, honouring its environment."""
        return cls(
            password_key=config.cipher.password_key,
            email_key=config.cipher.email_key,
            production=config.app.is_production,
            iterations=config.cipher.kdf_iterations,
        )

    def _key(self, purpose: Purpose) -> bytes:
        if not isinstance(purpose, Purpose):
            raise TypeError(f"purpose must be a Purpose, got {type(purpose).__name__}")
        return self._keys[purpose]

    def encrypt(self, plaintext: str, purpose: Purpose) -> str:
        """
        Encrypt a secret field.

        Args:
            plaintext: Secret value (may be empty)
            purpose: Which purpose key to use

        Returns:
            Envelope string "<ivHex>:<cipherHex>"
        """
        key = self._key(purpose)
        iv = secrets.token_bytes(IV_LENGTH_BYTES)

        padder = padding.PKCS7(_BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return f"{iv.hex()}{_ENVELOPE_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, envelope: str, purpose: Purpose) -> str:
        """
        Decrypt a secret field.

        Args:
            envelope: Envelope string produced by encrypt()
            purpose: Purpose the envelope was encrypted for

        Returns:
            The plaintext secret

        Raises:
            DecryptionError: Malformed envelope or purpose/key mismatch
        """
        key = self._key(purpose)
        iv, ciphertext = self._parse_envelope(envelope)

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(_BLOCK_SIZE_BITS).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionError("Invalid padding (wrong key or purpose)") from e

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted data is not valid UTF-8 (wrong key or purpose)") from e

    def reencrypt(self, envelope: str, from_purpose: Purpose, to_purpose: Purpose) -> str:
        """Move a secret from one purpose key to another."""
        return self.encrypt(self.decrypt(envelope, from_purpose), to_purpose)

    @staticmethod
    def is_envelope(value: str) -> bool:
        """Check whether a value is shaped like an envelope."""
        try:
            SecretCipher._parse_envelope(value)
        except DecryptionError:
            return False
        return True

    @staticmethod
    def _parse_envelope(envelope: str) -> tuple[bytes, bytes]:
        if not isinstance(envelope, str):
            raise DecryptionError("Envelope must be a string")

        parts = envelope.split(_ENVELOPE_SEPARATOR)
        if len(parts) != 2:
            raise DecryptionError("Invalid envelope format")

        iv_hex, cipher_hex = parts
        if len(iv_hex) != IV_LENGTH_BYTES * 2 or not _is_hex(iv_hex):
            raise DecryptionError("Invalid envelope IV")
        if not _is_hex(cipher_hex) or len(cipher_hex) % 2:
            raise DecryptionError("Invalid envelope ciphertext")

        ciphertext = bytes.fromhex(cipher_hex)
        if len(ciphertext) % (_BLOCK_SIZE_BITS // 8):
            raise DecryptionError("Ciphertext is not block aligned")

        return bytes.fromhex(iv_hex), ciphertext

    def self_test(self) -> bool:
        """
        Round-trip known-answer check for every purpose.

        Returns:
            True if every purpose round-trips and purposes stay isolated
        """
        sample = "credguard-self-test-é✓"
        for purpose in Purpose:
            first = self.encrypt(sample, purpose)
            second = self.encrypt(sample, purpose)
            if first == second or self.decrypt(first, purpose) != sample:
                logger.error("Cipher self-test failed for purpose %s", purpose.value)
                return False
        return self._keys[Purpose.EMAIL] != self._keys[Purpose.PASSWORD]

    def __repr__(self) -> str:
        """Safe representation without key material."""
        return (
            f"SecretCipher(algorithm={ENCRYPTION_ALGORITHM}, kdf={KEY_DERIVATION_FUNCTION}, "
            f"purposes={[p.value for p in self._keys]}, key_bits={KEY_LENGTH_BYTES * 8})"
        )
