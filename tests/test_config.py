"""Tests for immutable configuration and environment overrides."""

from pathlib import Path

import pytest

from credguard.core.config import (
    AppConfig,
    BreachConfig,
    CipherConfig,
    HistoryConfig,
    PathConfig,
    RotationConfig,
    SecureConfig,
    SimilarityConfig,
)

TEST_KEY = "t3st-pa55word-key-material-0001!"


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("PASSWORD_ENCRYPTION_KEY", "EMAIL_ENCRYPTION_KEY"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestDefaults:
    def test_section_defaults(self):
        config = SecureConfig()
        assert config.rotation.allow_multiple_scheduled is True
        assert config.rotation.generated_length == 16
        assert config.rotation.recent_rotation_grace_hours == 24
        assert config.breach.base_url == "https://api.pwnedpasswords.com"
        assert config.breach.request_delay == 0.7
        assert config.similarity.threshold == 0.8
        assert config.history.retention_count is None
        assert config.cipher.kdf_iterations == 100_000
        assert config.app.environment == "development"
        assert config.app.is_production is False

    def test_paths(self, tmp_path):
        paths = PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")
        assert paths.database_path == tmp_path / "data" / "credguard.db"
        assert paths.audit_log_path == tmp_path / "logs" / "audit.log"

    def test_relative_path_rejected(self):
        with pytest.raises(ValueError):
            PathConfig(data_dir=Path("relative"))


class TestValidation:
    @pytest.mark.parametrize("factory", [
        lambda: CipherConfig(kdf_iterations=1000),
        lambda: CipherConfig(key_length=16),
        lambda: RotationConfig(generated_length=4),
        lambda: BreachConfig(base_url="ftp://example.com"),
        lambda: BreachConfig(request_delay=-1),
        lambda: SimilarityConfig(threshold=1.5),
        lambda: HistoryConfig(retention_count=0),
        lambda: AppConfig(environment="staging"),
    ])
    def test_rejected(self, factory):
        with pytest.raises(ValueError):
            factory()


class TestDirectories:
    def test_ensure_directories(self, tmp_path):
        config = SecureConfig(paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"))
        config.ensure_directories()
        assert config.paths.data_dir.is_dir()
        assert config.paths.log_dir.is_dir()


class TestImmutability:
    def test_cannot_set_attribute(self):
        config = SecureConfig()
        with pytest.raises(AttributeError):
            config._rotation = RotationConfig()

    def test_sections_frozen(self):
        with pytest.raises(AttributeError):
            SecureConfig().breach.request_delay = 0

    def test_key_material_not_in_repr_or_hash(self):
        with_key = SecureConfig(cipher=CipherConfig(password_key=TEST_KEY))
        without_key = SecureConfig(cipher=CipherConfig())
        assert TEST_KEY not in repr(with_key)
        assert TEST_KEY not in repr(with_key.cipher)
        assert with_key.config_hash == without_key.config_hash


class TestEnvironmentOverrides:
    def test_load_overrides(self, clean_env, tmp_path):
        clean_env.setenv("CREDGUARD_APP__ENVIRONMENT", "production")
        clean_env.setenv("CREDGUARD_BREACH__REQUEST_DELAY", "1.5")
        clean_env.setenv("CREDGUARD_ROTATION__ALLOW_MULTIPLE_SCHEDULED", "false")
        clean_env.setenv("CREDGUARD_HISTORY__RETENTION_COUNT", "10")
        clean_env.setenv("CREDGUARD_SIMILARITY__MAX_ENTRIES", "50")
        clean_env.setenv("CREDGUARD_PATHS__DATA_DIR", str(tmp_path))

        config = SecureConfig.load()

        assert config.app.is_production is True
        assert config.breach.request_delay == 1.5
        assert config.rotation.allow_multiple_scheduled is False
        assert config.history.retention_count == 10
        assert config.similarity.max_entries == 50
        assert config.paths.data_dir == tmp_path

    def test_key_material_from_dedicated_variables(self, clean_env):
        clean_env.setenv("PASSWORD_ENCRYPTION_KEY", TEST_KEY)
        assert SecureConfig.load().cipher.password_key == TEST_KEY
        assert SecureConfig.load().cipher.email_key is None

    def test_sensitive_override_ignored(self, clean_env):
        clean_env.setenv("CREDGUARD_CIPHER__PASSWORD_KEY", TEST_KEY)
        assert SecureConfig.load().cipher.password_key is None
