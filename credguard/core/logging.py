"""
Secure Logging Module
=====================

Security-aware logging for the credential core.

Security Features:
- Automatic redaction of secrets, key material and envelopes
- Rotating log files with size limits
- Optional JSON output for log aggregation
- Loggers never receive plaintext; the filter is a second line
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional, Pattern

if TYPE_CHECKING:
    from credguard.core.config import SecureConfig


ROOT_LOGGER_NAME: Final[str] = "credguard"

# Patterns for sensitive data detection
_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    # Envelope "<32 hex iv>:<hex ciphertext>"
    ("envelope", re.compile(r'(?i)\b[a-f0-9]{32}:[a-f0-9]+\b')),
    ("password", re.compile(r'(?i)(password|passwd|pwd|secret)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("api_key", re.compile(r'(?i)(api[_-]?key|apikey|encryption[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Hex encoded secrets (longer than 32 chars)
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"

LOG_FILE_NAME: Final[str] = "credguard.log"
LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes sensitive information from log messages.

    Scans messages and string arguments for patterns that might contain
    secrets (passwords, keys, envelopes) and replaces them with [REDACTED].
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place. Always keeps the record."""
        if record.msg and isinstance(record.msg, str):
            record.msg = self.sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self.sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.sanitize(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def sanitize(self, text: str) -> str:
        """Remove sensitive data from text."""
        result = text

        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)

        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)

        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that outputs logs as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """Rotating file handler that creates its directory and rejects traversal."""

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        maxBytes: int = 10 * 1024 * 1024,  # 10 MB default
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")

        log_path = Path(filename).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(log_path),
            mode=mode,
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def _attach(
    handler: logging.Handler,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
) -> logging.Handler:
    handler.setLevel(logging.DEBUG)
    if fmt is not None:
        handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def get_secure_logger(name: str) -> logging.Logger:
    """
    Get a module logger under the credguard hierarchy.

    Handlers live on the package root logger (see configure_logging), so
    module loggers only need a name. Names outside the hierarchy are
    nested under it.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = False,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    fmt: str = LOG_FORMAT,
    date_format: str = LOG_DATE_FORMAT,
) -> logging.Logger:
    """
    Configure the package root logger with secure defaults.

    Call once at application startup. Calling again replaces the handlers.

    Args:
        log_dir: Directory for log files
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to output to stderr
        enable_file: Whether to output to a rotating file
        enable_json: Whether to use JSON format for file output
        max_file_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep
        fmt: Text format for console and plain file output
        date_format: strftime format for %(asctime)s

    Returns:
        The configured package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if enable_console:
        handlers.append(_attach(logging.StreamHandler(sys.stderr), fmt, date_format))
    if enable_file and log_dir:
        rotating = SecureRotatingFileHandler(
            filename=Path(log_dir) / LOG_FILE_NAME,
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        if enable_json:
            rotating.setFormatter(StructuredLogFormatter())
            handlers.append(_attach(rotating))
        else:
            handlers.append(_attach(rotating, fmt, date_format))

    # One filter instance shared by every handler
    redactor = SecureLogFilter()
    for handler in handlers:
        handler.addFilter(redactor)
        logger.addHandler(handler)

    # Keep records off the root logger so host handlers never see them unfiltered
    logger.propagate = False

    return logger


def configure_from_config(config: SecureConfig) -> logging.Logger:
    """Configure logging from a SecureConfig instance."""
    log_config = config.logging
    return configure_logging(
        log_dir=config.paths.log_dir,
        level=log_config.level,
        enable_console=log_config.enable_console,
        enable_file=log_config.enable_file,
        enable_json=log_config.enable_json,
        max_file_size=log_config.max_file_size_bytes,
        backup_count=log_config.backup_count,
        fmt=log_config.format,
        date_format=log_config.date_format,
    )
