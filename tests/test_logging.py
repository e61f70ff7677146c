"""Tests for secure logging."""

import json
import logging

import pytest

from credguard.core.config import LoggingConfig, PathConfig, SecureConfig
from credguard.core.logging import (
    ROOT_LOGGER_NAME,
    SecureLogFilter,
    StructuredLogFormatter,
    configure_from_config,
    configure_logging,
    get_secure_logger,
)


@pytest.fixture
def restore_root_logger():
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


class TestSecureLogFilter:
    @pytest.mark.parametrize("message, leaked", [
        ("password=hunter2", "hunter2"),
        ("PASSWORD_ENCRYPTION_KEY: abcdefghabcdefghabcdefghabcdefgh", "abcdefghabcdefgh"),
        ("token=eyJhbGciOi", "eyJhbGciOi"),
        ("envelope " + "ab" * 16 + ":" + "cd" * 16, "cd" * 16),
        ("blob " + "f0" * 32, "f0" * 32),
    ])
    def test_sanitize(self, message, leaked):
        assert leaked not in SecureLogFilter().sanitize(message)

    def test_plain_message_untouched(self):
        assert SecureLogFilter().sanitize("Rotation r-1 completed") == "Rotation r-1 completed"

    def test_filter_redacts_args(self):
        record = logging.LogRecord(
            "credguard.test", logging.INFO, __file__, 1, "value %s", ("secret=abc123",), None
        )
        assert SecureLogFilter().filter(record) is True
        assert "abc123" not in record.getMessage()


class TestLoggers:
    def test_names_nested_under_package(self):
        assert get_secure_logger("credguard.db.history").name == "credguard.db.history"
        assert get_secure_logger("thirdparty").name == "credguard.thirdparty"

    def test_configure_file_json(self, tmp_path, restore_root_logger):
        logger = configure_logging(
            log_dir=tmp_path, level="DEBUG", enable_console=False, enable_file=True, enable_json=True
        )
        assert logger.propagate is False

        get_secure_logger("credguard.test").info("rotated with password=hunter2")
        for handler in logger.handlers:
            handler.flush()

        line = (tmp_path / "credguard.log").read_text().strip().splitlines()[-1]
        data = json.loads(line)
        assert data["level"] == "INFO"
        assert "hunter2" not in data["message"]

    def test_structured_formatter(self):
        record = logging.LogRecord("credguard.x", logging.WARNING, __file__, 7, "hello", (), None)
        data = json.loads(StructuredLogFormatter().format(record))
        assert data["message"] == "hello"
        assert data["logger"] == "credguard.x"

    def test_configure_from_config_uses_configured_format(self, tmp_path, restore_root_logger):
        config = SecureConfig(
            paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"),
            logging=LoggingConfig(
                level="DEBUG",
                enable_console=False,
                enable_file=True,
                format="%(levelname)s::%(name)s::%(message)s",
            ),
        )
        logger = configure_from_config(config)

        get_secure_logger("credguard.test").warning("policy saved")
        for handler in logger.handlers:
            handler.flush()

        text = (tmp_path / "logs" / "credguard.log").read_text()
        assert "WARNING::credguard.test::policy saved" in text
