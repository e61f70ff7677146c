"""Tests for credential creation and restore from history."""

import uuid

import pytest

from credguard.core.crypto.kdf import Purpose
from credguard.core.errors import NotFoundError
from credguard.core.models import ChangeType, Credential, PasswordPolicyConfig, Strength
from credguard.security.audit import AuditEventType
from credguard.security.versions import CredentialVersions


@pytest.fixture
def versions(db, history, audit_log) -> CredentialVersions:
    return CredentialVersions(db, history=history, audit=audit_log)


def _new_credential(cipher, secret: str) -> Credential:
    return Credential(
        id=str(uuid.uuid4()),
        name="GitHub",
        username="alice@example.com",
        encrypted_secret=cipher.encrypt(secret, Purpose.PASSWORD),
        owner_id="alice",
        strength=Strength.MEDIUM,
        url="https://github.com",
    )


class TestCreate:
    def test_writes_create_snapshot(self, versions, cipher, credentials, history, audit_log):
        credential = versions.create(_new_credential(cipher, "First-Secret-1!"), actor="alice")

        assert credentials.get(credential.id) is not None
        (entry,) = history.query(credential.id)
        assert entry.change_type is ChangeType.CREATE
        assert entry.encrypted_secret == credential.encrypted_secret
        assert audit_log.get_events(event_type=AuditEventType.PASSWORD_CREATED)


class TestRestore:
    @pytest.fixture
    def edited(self, versions, cipher, credentials, history):
        """A credential created once and then edited once."""
        credential = versions.create(_new_credential(cipher, "First-Secret-1!"), actor="alice")
        original_entry = history.query(credential.id)[0]

        history.append(credential.id, credential, "alice", ChangeType.UPDATE)
        credential.name = "GitHub (work)"
        credential.notes = "moved to work account"
        credential.encrypted_secret = cipher.encrypt("Second-Secret-2!", Purpose.PASSWORD)
        credentials.update(credential)
        return credential, original_entry

    def test_restores_fields(self, versions, cipher, credentials, edited):
        credential, entry = edited

        restored = versions.restore(credential.id, entry.id, actor="alice")

        stored = credentials.require(credential.id)
        assert stored.encrypted_secret == entry.encrypted_secret
        assert cipher.decrypt(stored.encrypted_secret, Purpose.PASSWORD) == "First-Secret-1!"
        assert (stored.name, stored.notes, stored.url) == ("GitHub", None, "https://github.com")
        assert restored.encrypted_secret == stored.encrypted_secret

    def test_appends_update_then_restore(self, versions, history, edited):
        credential, entry = edited
        replaced_secret = credential.encrypted_secret

        versions.restore(credential.id, entry.id, actor="alice")

        newest, before = history.query(credential.id, limit=2)
        assert newest.change_type is ChangeType.RESTORE
        assert newest.encrypted_secret == entry.encrypted_secret
        assert before.change_type is ChangeType.UPDATE
        assert before.encrypted_secret == replaced_secret
        assert before.name == "GitHub (work)"

    def test_restored_secret_counts_toward_reuse(self, versions, engine, edited):
        credential, entry = edited
        versions.restore(credential.id, entry.id, actor="alice")

        result = engine.check_reuse(
            "Second-Secret-2!", credential.id, PasswordPolicyConfig(prevent_reuse_count=2)
        )
        assert result.can_reuse is False

    def test_audited(self, versions, audit_log, edited):
        credential, entry = edited
        versions.restore(credential.id, entry.id, actor="alice")
        (event,) = audit_log.get_events(event_type=AuditEventType.PASSWORD_RESTORED)
        assert event["details"]["history_id"] == entry.id

    def test_entry_of_other_credential_rejected(
        self, versions, cipher, credentials, history, edited
    ):
        credential, _ = edited
        other = versions.create(_new_credential(cipher, "Other-Secret-3!"), actor="alice")
        foreign_entry = history.query(other.id)[0]
        before = history.count(credential.id)

        with pytest.raises(NotFoundError):
            versions.restore(credential.id, foreign_entry.id, actor="alice")

        assert history.count(credential.id) == before
        assert credentials.require(credential.id).name == "GitHub (work)"

    def test_missing_entry(self, versions, edited):
        credential, _ = edited
        with pytest.raises(NotFoundError):
            versions.restore(credential.id, "missing", actor="alice")

    def test_missing_credential(self, versions):
        with pytest.raises(NotFoundError):
            versions.restore("missing", "missing", actor="alice")
