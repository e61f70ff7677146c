"""Tests for the credential history ledger and database plumbing."""

import threading

import pytest

from credguard.core.errors import NotFoundError, StorageBusyError
from credguard.core.models import ChangeType, PasswordPolicyConfig
from credguard.db.database import VaultDatabase
from credguard.db.history import HistoryStore


class TestHistoryStore:
    def test_append_copies_full_field_set(self, make_credential, history):
        credential = make_credential()
        credential.url = "https://example.com"
        credential.notes = "rotate quarterly"

        entry = history.append(credential.id, credential, "alice", ChangeType.CREATE)

        stored = history.get(entry.id)
        assert stored.encrypted_secret == credential.encrypted_secret
        assert stored.name == credential.name
        assert stored.username == credential.username
        assert stored.url == "https://example.com"
        assert stored.notes == "rotate quarterly"
        assert stored.change_type is ChangeType.CREATE
        assert stored.changed_by == "alice"

    def test_query_order(self, make_credential, history):
        credential = make_credential()
        for index in range(3):
            credential.notes = f"v{index}"
            history.append(credential.id, credential, "alice")

        assert [e.notes for e in history.query(credential.id)] == ["v2", "v1", "v0"]
        assert [e.notes for e in history.query(credential.id, newest_first=False)] == ["v0", "v1", "v2"]
        assert [e.notes for e in history.query(credential.id, limit=2)] == ["v2", "v1"]
        assert history.query(credential.id, limit=0) == []

    def test_snapshot_is_immutable(self, make_credential, history):
        credential = make_credential()
        entry = history.append(credential.id, credential, "alice")
        with pytest.raises(AttributeError):
            entry.encrypted_secret = "tampered"

    def test_snapshot_unaffected_by_later_mutation(self, make_credential, history, credentials):
        credential = make_credential()
        original = credential.encrypted_secret
        history.append(credential.id, credential, "alice")

        credential.encrypted_secret = "00" * 16 + ":" + "11" * 16
        credentials.update(credential)

        assert history.query(credential.id)[0].encrypted_secret == original

    def test_count_by_change_type(self, make_credential, history):
        credential = make_credential()
        history.append(credential.id, credential, "alice", ChangeType.CREATE)
        history.append(credential.id, credential, "alice", ChangeType.UPDATE)
        history.append(credential.id, credential, "alice", ChangeType.RESTORE)
        assert history.count(credential.id) == 3
        assert history.count(credential.id, ChangeType.UPDATE) == 1

    def test_deleted_with_credential(self, make_credential, history, credentials):
        credential = make_credential()
        history.append(credential.id, credential, "alice")
        credentials.delete(credential.id)
        assert history.count(credential.id) == 0

    def test_retention(self, db, make_credential):
        store = HistoryStore(db, retention_count=2)
        credential = make_credential()
        for index in range(5):
            credential.notes = f"v{index}"
            store.append(credential.id, credential, "alice")
        assert [e.notes for e in store.query(credential.id)] == ["v4", "v3"]

    def test_prune(self, make_credential, history):
        credential = make_credential()
        for _ in range(4):
            history.append(credential.id, credential, "alice")
        assert history.prune(credential.id, keep=1) == 3
        assert history.count(credential.id) == 1

    def test_get_missing(self, history):
        with pytest.raises(NotFoundError):
            history.get("missing")


class TestTransactions:
    def test_rollback_discards_all_writes(self, db: VaultDatabase, make_credential, history, credentials):
        credential = make_credential()

        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                history.append(credential.id, credential, "alice", conn=conn)
                credentials.update_secret(
                    credential.id, "00" * 16 + ":" + "22" * 16, credential.strength, conn=conn
                )
                raise RuntimeError("boom")

        assert history.count(credential.id) == 0
        assert credentials.require(credential.id).encrypted_secret == credential.encrypted_secret

    def test_commit(self, db: VaultDatabase, make_credential, history):
        credential = make_credential()
        with db.transaction() as conn:
            history.append(credential.id, credential, "alice", conn=conn)
        assert history.count(credential.id) == 1


class TestConcurrentReads:
    @pytest.fixture
    def held_writer(self, db: VaultDatabase, history, make_credential):
        """Keep an uncommitted history append open on another thread."""
        credential = make_credential(secret="OldPass1!")
        history.append(credential.id, credential, "alice")
        locked, release = threading.Event(), threading.Event()

        def hold() -> None:
            with db.transaction() as conn:
                history.append(credential.id, credential, "bob", conn=conn)
                locked.set()
                release.wait(5)

        writer = threading.Thread(target=hold)
        writer.start()
        assert locked.wait(5)
        yield credential
        release.set()
        writer.join(5)

    def test_reuse_check_runs_while_writer_holds_lock(self, held_writer, engine, history):
        result = engine.check_reuse(
            "OldPass1!", held_writer.id, PasswordPolicyConfig(prevent_reuse_count=3)
        )
        assert result.can_reuse is False
        # Only the committed snapshot is visible
        assert history.count(held_writer.id) == 1

    def test_second_writer_gets_busy_error(self, db: VaultDatabase, history, make_credential):
        impatient = VaultDatabase(db.path, busy_timeout=0.1)
        credential = make_credential()
        locked, release = threading.Event(), threading.Event()

        def hold() -> None:
            with db.transaction() as conn:
                history.append(credential.id, credential, "bob", conn=conn)
                locked.set()
                release.wait(5)

        writer = threading.Thread(target=hold)
        writer.start()
        try:
            assert locked.wait(5)
            with pytest.raises(StorageBusyError):
                with impatient.transaction():
                    pass
        finally:
            release.set()
            writer.join(5)
        assert history.count(credential.id) == 1
