"""Shared fixtures for credguard tests."""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import pytest

from credguard.core.crypto.cipher import SecretCipher
from credguard.core.crypto.kdf import Purpose
from credguard.core.models import Credential, PasswordPolicyConfig, Strength, utcnow
from credguard.db.credentials import CredentialRepository
from credguard.db.database import VaultDatabase
from credguard.db.history import HistoryStore
from credguard.db.rotations import RotationStore
from credguard.db.settings import PolicySettingsStore
from credguard.security.audit import TamperAwareAuditLog
from credguard.security.policy import PolicyEngine
from credguard.security.rotation import RotationScheduler

TEST_PASSWORD_KEY = "t3st-pa55word-key-material-0001!"
TEST_EMAIL_KEY = "t3st-emai1-key-material-00000002"
OTHER_PASSWORD_KEY = "0ther-pa55word-key-material-003!"


@pytest.fixture(scope="session")
def cipher() -> SecretCipher:
    """Key derivation is slow; build the cipher once per session."""
    return SecretCipher(password_key=TEST_PASSWORD_KEY, email_key=TEST_EMAIL_KEY)


@pytest.fixture(scope="session")
def other_cipher() -> SecretCipher:
    return SecretCipher(password_key=OTHER_PASSWORD_KEY, email_key=TEST_EMAIL_KEY)


@pytest.fixture
def db(tmp_path: Path) -> VaultDatabase:
    return VaultDatabase(tmp_path / "vault.db")


@pytest.fixture
def credentials(db: VaultDatabase) -> CredentialRepository:
    return CredentialRepository(db)


@pytest.fixture
def history(db: VaultDatabase) -> HistoryStore:
    return HistoryStore(db)


@pytest.fixture
def rotations(db: VaultDatabase) -> RotationStore:
    return RotationStore(db)


@pytest.fixture
def settings(db: VaultDatabase) -> PolicySettingsStore:
    return PolicySettingsStore(db)


@pytest.fixture
def engine(cipher: SecretCipher, history: HistoryStore, settings: PolicySettingsStore) -> PolicyEngine:
    return PolicyEngine(cipher, history, settings)


@pytest.fixture
def audit_log(tmp_path: Path) -> TamperAwareAuditLog:
    return TamperAwareAuditLog(tmp_path / "logs" / "audit.log")


@pytest.fixture
def scheduler(
    db: VaultDatabase,
    cipher: SecretCipher,
    engine: PolicyEngine,
    history: HistoryStore,
    audit_log: TamperAwareAuditLog,
) -> RotationScheduler:
    return RotationScheduler(db, cipher, engine, history=history, audit=audit_log)


@pytest.fixture
def relaxed_policy() -> PasswordPolicyConfig:
    return PasswordPolicyConfig(
        min_length=8,
        require_uppercase=False,
        require_lowercase=False,
        require_numbers=False,
        require_special=False,
    )


@pytest.fixture
def make_credential(
    credentials: CredentialRepository,
    cipher: SecretCipher,
) -> Callable[..., Credential]:
    """Factory that stores a credential with an encrypted secret."""

    def _make(
        secret: str = "Initial-Secret-123!",
        owner_id: str = "alice",
        name: Optional[str] = None,
        policy_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Credential:
        created_at = created_at or utcnow()
        credential = Credential(
            id=str(uuid.uuid4()),
            name=name or f"cred-{uuid.uuid4().hex[:6]}",
            username=f"{owner_id}@example.com",
            encrypted_secret=cipher.encrypt(secret, Purpose.PASSWORD),
            owner_id=owner_id,
            strength=Strength.MEDIUM,
            rotation_policy_id=policy_id,
            created_at=created_at,
            updated_at=created_at,
        )
        return credentials.add(credential)

    return _make
