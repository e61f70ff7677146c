"""Tests for the secret cipher and key guard."""

import warnings

import pytest

from credguard.core.config import AppConfig, CipherConfig, SecureConfig
from credguard.core.constants import DEVELOPMENT_KEY, KDF_ITERATIONS
from credguard.core.crypto.cipher import SecretCipher
from credguard.core.crypto.kdf import (
    Purpose,
    SecurityWarning,
    derive_purpose_key,
    validate_key_material,
)
from credguard.core.errors import DecryptionError, KeyMaterialError

from tests.conftest import TEST_EMAIL_KEY, TEST_PASSWORD_KEY


class TestEncryptDecrypt:
    @pytest.mark.parametrize("purpose", list(Purpose))
    def test_roundtrip(self, cipher, purpose):
        envelope = cipher.encrypt("my-secret-api-key-123", purpose)
        assert cipher.decrypt(envelope, purpose) == "my-secret-api-key-123"

    def test_empty_string(self, cipher):
        envelope = cipher.encrypt("", Purpose.PASSWORD)
        assert cipher.decrypt(envelope, Purpose.PASSWORD) == ""

    def test_unicode(self, cipher):
        plaintext = "sekrit: \U0001f511 clé"
        assert cipher.decrypt(cipher.encrypt(plaintext, Purpose.EMAIL), Purpose.EMAIL) == plaintext

    def test_fresh_iv_per_call(self, cipher):
        a = cipher.encrypt("same", Purpose.PASSWORD)
        b = cipher.encrypt("same", Purpose.PASSWORD)
        assert a != b
        assert a.split(":")[0] != b.split(":")[0]
        assert cipher.decrypt(a, Purpose.PASSWORD) == "same"
        assert cipher.decrypt(b, Purpose.PASSWORD) == "same"

    def test_envelope_format(self, cipher):
        iv_hex, cipher_hex = cipher.encrypt("hunter2", Purpose.PASSWORD).split(":")
        assert len(iv_hex) == 32
        assert iv_hex == iv_hex.lower()
        assert len(cipher_hex) % 32 == 0
        int(cipher_hex, 16)

    def test_cross_purpose_never_yields_plaintext(self, cipher):
        plaintext = "user@example.com"
        for _ in range(20):
            envelope = cipher.encrypt(plaintext, Purpose.EMAIL)
            try:
                result = cipher.decrypt(envelope, Purpose.PASSWORD)
            except DecryptionError:
                continue
            assert result != plaintext

    def test_wrong_key_fails(self, cipher, other_cipher):
        envelope = cipher.encrypt("secret-value", Purpose.PASSWORD)
        try:
            result = other_cipher.decrypt(envelope, Purpose.PASSWORD)
        except DecryptionError:
            return
        assert result != "secret-value"

    def test_purpose_must_be_enum(self, cipher):
        with pytest.raises(TypeError):
            cipher.encrypt("x", "password")

    def test_reencrypt_moves_purpose(self, cipher):
        envelope = cipher.encrypt("migrate-me", Purpose.EMAIL)
        moved = cipher.reencrypt(envelope, Purpose.EMAIL, Purpose.PASSWORD)
        assert cipher.decrypt(moved, Purpose.PASSWORD) == "migrate-me"

    def test_self_test(self, cipher):
        assert cipher.self_test() is True

    def test_repr_hides_keys(self, cipher):
        text = repr(cipher)
        assert TEST_PASSWORD_KEY not in text
        assert "key_bits=256" in text
        assert "algorithm=AES-256-CBC" in text
        assert "kdf=PBKDF2-SHA256" in text


class TestMalformedEnvelopes:
    @pytest.mark.parametrize("envelope", [
        "",
        "no-separator",
        "a:b:c",
        "zz" * 16 + ":00112233445566778899aabbccddeeff",
        "00" * 15 + ":00112233445566778899aabbccddeeff",
        "00" * 16 + ":",
        "00" * 16 + ":xyz",
        "00" * 16 + ":0011",
        "00" * 16 + ":001",
    ])
    def test_rejected(self, cipher, envelope):
        with pytest.raises(DecryptionError):
            cipher.decrypt(envelope, Purpose.PASSWORD)

    def test_is_envelope(self, cipher):
        assert SecretCipher.is_envelope(cipher.encrypt("x", Purpose.PASSWORD))
        assert not SecretCipher.is_envelope("plaintext")

    def test_tampered_padding(self, cipher):
        iv_hex, cipher_hex = cipher.encrypt("x", Purpose.PASSWORD).split(":")
        flipped = f"{int(cipher_hex[-2:], 16) ^ 0xFF:02x}"
        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{iv_hex}:{cipher_hex[:-2]}{flipped}", Purpose.PASSWORD)


class TestKeyDerivation:
    def test_purpose_keys_differ(self):
        email = derive_purpose_key(TEST_PASSWORD_KEY, Purpose.EMAIL, iterations=1000)
        password = derive_purpose_key(TEST_PASSWORD_KEY, Purpose.PASSWORD, iterations=1000)
        assert len(email) == len(password) == 32
        assert email != password

    def test_deterministic(self):
        a = derive_purpose_key(TEST_PASSWORD_KEY, Purpose.PASSWORD, iterations=1000)
        b = derive_purpose_key(TEST_PASSWORD_KEY, Purpose.PASSWORD, iterations=1000)
        assert a == b

    def test_salts(self):
        assert Purpose.EMAIL.salt == b"email_encryption_salt"
        assert Purpose.PASSWORD.salt == b"password_encryption_salt"
        assert KDF_ITERATIONS == 100_000


class TestKeyGuard:
    def test_production_requires_key(self):
        with pytest.raises(KeyMaterialError, match="must be set"):
            validate_key_material(None, production=True)

    def test_production_rejects_placeholder(self):
        with pytest.raises(KeyMaterialError, match="placeholder"):
            validate_key_material("12345678901234567890123456789012", production=True)

    def test_production_rejects_development_key(self):
        with pytest.raises(KeyMaterialError):
            validate_key_material(DEVELOPMENT_KEY, production=True)

    @pytest.mark.parametrize("production", [True, False])
    def test_wrong_length_always_fatal(self, production):
        with pytest.raises(KeyMaterialError, match="exactly 32"):
            validate_key_material("too-short", production=production)

    def test_production_accepts_real_key(self):
        assert validate_key_material(TEST_PASSWORD_KEY, production=True) == TEST_PASSWORD_KEY

    def test_development_falls_back_with_warning(self):
        with pytest.warns(SecurityWarning):
            assert validate_key_material(None, production=False) == DEVELOPMENT_KEY

    def test_development_placeholder_warns(self):
        with pytest.warns(SecurityWarning, match="placeholder"):
            validate_key_material("00000000000000000000000000000000", production=False)

    def test_cipher_refuses_production_without_key(self):
        with pytest.raises(KeyMaterialError):
            SecretCipher(password_key=None, production=True, iterations=1000)

    def test_from_config_production(self):
        config = SecureConfig(
            cipher=CipherConfig(password_key=TEST_PASSWORD_KEY, email_key=TEST_EMAIL_KEY),
            app=AppConfig(environment="production"),
        )
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            built = SecretCipher.from_config(config)
        assert built.decrypt(built.encrypt("ok", Purpose.PASSWORD), Purpose.PASSWORD) == "ok"

    def test_from_config_production_placeholder(self):
        config = SecureConfig(
            cipher=CipherConfig(password_key=DEVELOPMENT_KEY),
            app=AppConfig(environment="production"),
        )
        with pytest.raises(KeyMaterialError):
            SecretCipher.from_config(config)
