"""Tests for bulk vault analysis."""

import httpx
import pytest

from credguard.analysis.breach import BreachDetector, sha1_hex
from credguard.analysis.similarity import SimilarityAnalyzer
from credguard.analysis.vault_scan import VaultAnalyzer
from credguard.core.config import BreachConfig, SimilarityConfig
from credguard.core.errors import NotFoundError, ValidationError
from credguard.security.audit import AuditEventType


@pytest.fixture
def vault(make_credential, credentials):
    ids = {
        "shared_a": make_credential(secret="Shared-Secret-1!").id,
        "shared_b": make_credential(secret="Shared-Secret-1!").id,
        "similar": make_credential(secret="Shared-Secret-2!").id,
        "unique": make_credential(secret="Completely/Different#77").id,
        "other_owner": make_credential(secret="Shared-Secret-1!", owner_id="bob").id,
    }
    broken = make_credential(secret="irrelevant")
    broken.encrypted_secret = "not-an-envelope"
    credentials.update(broken)
    ids["broken"] = broken.id
    return ids


def _breach_detector(breached_secret: str) -> BreachDetector:
    digest = sha1_hex(breached_secret)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(digest[:5]):
            return httpx.Response(200, text=f"{digest[5:]}:42\r\n")
        return httpx.Response(200, text="")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return BreachDetector(BreachConfig(request_delay=0), client=client)


class TestVaultAnalyzer:
    def test_decrypt_owner_counts_failures(self, cipher, credentials, vault):
        decrypted = VaultAnalyzer(cipher, credentials).decrypt_owner("alice")
        assert decrypted.skipped_count == 1
        assert {e.credential_id for e in decrypted.entries} == {
            vault["shared_a"], vault["shared_b"], vault["similar"], vault["unique"],
        }

    def test_scan(self, cipher, credentials, vault):
        report = VaultAnalyzer(cipher, credentials).scan("alice")

        assert report.scanned_count == 4
        assert report.skipped_count == 1
        (reused,) = report.reused
        assert set(reused.credential_ids) == {vault["shared_a"], vault["shared_b"]}
        assert len(report.duplicates) == 1
        (similar,) = report.similar
        assert set(similar.credential_ids) == {vault["shared_a"], vault["shared_b"], vault["similar"]}
        assert report.breached == []

    def test_scan_bounded(self, cipher, credentials, vault):
        from credguard.core.errors import ScanLimitExceeded

        analyzer = VaultAnalyzer(cipher, credentials, SimilarityAnalyzer(SimilarityConfig(max_entries=2)))
        with pytest.raises(ScanLimitExceeded):
            analyzer.scan("alice")
        assert analyzer.scan("alice", limit=2).scanned_count == 4

    def test_breach_scan(self, cipher, credentials, vault, audit_log):
        analyzer = VaultAnalyzer(
            cipher,
            credentials,
            breach=_breach_detector("Completely/Different#77"),
            audit=audit_log,
        )
        report = analyzer.scan("alice", include_similar=False, include_breach=True)

        assert [(cid, r.breach_count) for cid, r in report.breached] == [(vault["unique"], 42)]
        assert len(audit_log.get_events(event_type=AuditEventType.PASSWORD_BREACH_CHECKED)) == 1
        detected = audit_log.get_events(event_type=AuditEventType.PASSWORD_BREACH_DETECTED)
        assert len(detected) == 1
        assert "Completely/Different#77" not in audit_log._log_path.read_text()

    def test_breach_requires_detector(self, cipher, credentials, vault):
        with pytest.raises(RuntimeError):
            VaultAnalyzer(cipher, credentials).scan("alice", include_breach=True)


class TestResolveDuplicates:
    def test_delete_group(self, cipher, credentials, vault, audit_log):
        analyzer = VaultAnalyzer(cipher, credentials, audit=audit_log)
        group = [vault["shared_a"], vault["shared_b"]]

        result = analyzer.resolve_duplicates("alice", group, actor="alice")

        assert result.deleted_count == 2
        assert result.kept_id is None
        assert all(credentials.get(i) is None for i in group)
        assert credentials.get(vault["other_owner"]) is not None
        assert audit_log.get_events(event_type=AuditEventType.PASSWORD_BULK_DELETE)

    def test_merge_keeps_one(self, cipher, credentials, vault, audit_log):
        analyzer = VaultAnalyzer(cipher, credentials, audit=audit_log)
        group = [vault["shared_a"], vault["shared_b"], vault["similar"]]

        result = analyzer.resolve_duplicates("alice", group, actor="alice", keep_id=vault["shared_a"])

        assert result.deleted_ids == [vault["shared_b"], vault["similar"]]
        assert result.deleted_count == 2
        assert credentials.get(vault["shared_a"]) is not None
        assert analyzer.scan("alice").reused == []
        assert audit_log.get_events(event_type=AuditEventType.PASSWORD_BULK_MERGE)

    @pytest.mark.parametrize("ids, keep", [
        ([], None),
        (["shared_a", "shared_b"], "unique"),
        (["shared_a"], "shared_a"),
    ])
    def test_invalid_request(self, cipher, credentials, vault, ids, keep):
        analyzer = VaultAnalyzer(cipher, credentials)
        with pytest.raises(ValidationError):
            analyzer.resolve_duplicates(
                "alice", [vault[i] for i in ids], actor="alice",
                keep_id=vault[keep] if keep else None,
            )

    def test_other_owner_rejected_without_deleting(self, cipher, credentials, vault):
        analyzer = VaultAnalyzer(cipher, credentials)
        with pytest.raises(NotFoundError):
            analyzer.resolve_duplicates(
                "alice", [vault["shared_a"], vault["other_owner"]], actor="alice"
            )
        assert credentials.get(vault["shared_a"]) is not None
        assert credentials.get(vault["other_owner"]) is not None
