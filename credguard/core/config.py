"""
Secure Configuration Module
===========================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Raw key material only read from dedicated variables
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Any, Optional

from credguard.core.constants import (
    BREACH_API_URL,
    BREACH_REQUEST_DELAY_SECONDS,
    DEFAULT_SIMILARITY_THRESHOLD,
    KDF_ITERATIONS,
    KEY_LENGTH_BYTES,
)


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt"
})

# Only these variables may carry raw key material
PASSWORD_KEY_ENV: Final[str] = "PASSWORD_ENCRYPTION_KEY"
EMAIL_KEY_ENV: Final[str] = "EMAIL_ENCRYPTION_KEY"

_ENVIRONMENTS: Final[frozenset[str]] = frozenset({"development", "test", "production"})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "CredGuard"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "CredGuard" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "CredGuard"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "CredGuard" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        """Validate paths after initialization."""
        for field_name in ["data_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")

    @property
    def database_path(self) -> Path:
        return self.data_dir / "credguard.db"

    @property
    def audit_log_path(self) -> Path:
        return self.log_dir / "audit.log"


@dataclass(frozen=True, slots=True)
class CipherConfig:
    """
    Immutable secret-cipher configuration.

    Raw key material is held here only for handing to SecretCipher and is
    never included in repr or in the configuration hash.
    """

    password_key: Optional[str] = field(default=None, repr=False)
    email_key: Optional[str] = field(default=None, repr=False)
    kdf_iterations: int = KDF_ITERATIONS
    key_length: int = KEY_LENGTH_BYTES

    def __post_init__(self) -> None:
        """Validate cipher settings."""
        if self.kdf_iterations < 100_000:
            raise ValueError("Key derivation iterations must be at least 100,000")
        if self.key_length != 32:
            raise ValueError("Key length must be 32 bytes for AES-256")


@dataclass(frozen=True, slots=True)
class RotationConfig:
    """Immutable rotation scheduler settings."""

    allow_multiple_scheduled: bool = True
    generated_length: int = 16
    recent_rotation_grace_hours: int = 24
    generation_attempts: int = 5

    def __post_init__(self) -> None:
        if self.generated_length < 8:
            raise ValueError("Generated secret length must be at least 8")
        if self.generation_attempts < 1:
            raise ValueError("generation_attempts must be at least 1")


@dataclass(frozen=True, slots=True)
class BreachConfig:
    """Immutable breach-corpus client settings."""

    base_url: str = BREACH_API_URL
    request_delay: float = BREACH_REQUEST_DELAY_SECONDS
    timeout: float = 10.0
    user_agent: str = "CredGuard-Breach-Checker/1.0"
    add_padding: bool = False

    def __post_init__(self) -> None:
        if not self.base_url.startswith(("https://", "http://")):
            raise ValueError(f"Invalid breach API URL: {self.base_url}")
        if self.request_delay < 0:
            raise ValueError("request_delay cannot be negative")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass(frozen=True, slots=True)
class SimilarityConfig:
    """Immutable similarity scan settings."""

    threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    max_entries: int = 500

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError("Similarity threshold must be between 0 and 1")
        if self.max_entries < 2:
            raise ValueError("max_entries must be at least 2")


@dataclass(frozen=True, slots=True)
class HistoryConfig:
    """Immutable history retention settings. None keeps every snapshot."""

    retention_count: Optional[int] = None

    def __post_init__(self) -> None:
        if self.retention_count is not None and self.retention_count < 1:
            raise ValueError("retention_count must be at least 1")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable application configuration."""

    app_name: str = "CredGuard"
    version: str = "0.1.0"
    environment: str = "development"

    def __post_init__(self) -> None:
        if self.environment not in _ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment: {self.environment!r} "
                f"(expected one of {sorted(_ENVIRONMENTS)})"
            )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class SecureConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = SecureConfig.load()
        db_path = config.paths.database_path
        delay = config.breach.request_delay

    Environment variables are prefixed with CREDGUARD_ and use double
    underscores for nested values. Raw key material is never read through
    the generic override mechanism.
    """

    __slots__ = (
        "_paths", "_cipher", "_rotation", "_breach", "_similarity",
        "_history", "_logging", "_app", "_frozen", "_config_hash",
    )

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        cipher: Optional[CipherConfig] = None,
        rotation: Optional[RotationConfig] = None,
        breach: Optional[BreachConfig] = None,
        similarity: Optional[SimilarityConfig] = None,
        history: Optional[HistoryConfig] = None,
        logging: Optional[LoggingConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        """Initialize configuration. Use SecureConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_cipher", cipher or CipherConfig())
        object.__setattr__(self, "_rotation", rotation or RotationConfig())
        object.__setattr__(self, "_breach", breach or BreachConfig())
        object.__setattr__(self, "_similarity", similarity or SimilarityConfig())
        object.__setattr__(self, "_history", history or HistoryConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_app", app or AppConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        # CipherConfig repr excludes key material
        config_str = (
            f"{self._paths}|{self._cipher}|{self._rotation}|{self._breach}|"
            f"{self._similarity}|{self._history}|{self._logging}|{self._app}"
        )
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def cipher(self) -> CipherConfig:
        return self._cipher

    @property
    def rotation(self) -> RotationConfig:
        return self._rotation

    @property
    def breach(self) -> BreachConfig:
        return self._breach

    @property
    def similarity(self) -> SimilarityConfig:
        return self._similarity

    @property
    def history(self) -> HistoryConfig:
        return self._history

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def app(self) -> AppConfig:
        return self._app

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "CREDGUARD") -> SecureConfig:
        """
        Load configuration with environment variable overrides.

        Examples:
            CREDGUARD_APP__ENVIRONMENT=production
            CREDGUARD_LOGGING__LEVEL=DEBUG
            CREDGUARD_BREACH__REQUEST_DELAY=1.5
            CREDGUARD_ROTATION__ALLOW_MULTIPLE_SCHEDULED=false
            CREDGUARD_PATHS__DATA_DIR=/var/lib/credguard

        Raw key material comes from PASSWORD_ENCRYPTION_KEY and
        EMAIL_ENCRYPTION_KEY only.

        Args:
            env_prefix: Prefix for environment variables (default: CREDGUARD)

        Returns:
            Configured SecureConfig instance
        """
        env = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        if "paths.data_dir" in env:
            paths_kwargs["data_dir"] = Path(env["paths.data_dir"])
        if "paths.log_dir" in env:
            paths_kwargs["log_dir"] = Path(env["paths.log_dir"])

        cipher_kwargs: dict[str, Any] = {
            "password_key": os.environ.get(PASSWORD_KEY_ENV) or None,
            "email_key": os.environ.get(EMAIL_KEY_ENV) or None,
        }
        if "cipher.kdf_iterations" in env:
            cipher_kwargs["kdf_iterations"] = int(env["cipher.kdf_iterations"])

        rotation_kwargs: dict[str, Any] = {}
        if "rotation.allow_multiple_scheduled" in env:
            rotation_kwargs["allow_multiple_scheduled"] = _parse_bool(
                env["rotation.allow_multiple_scheduled"]
            )
        if "rotation.generated_length" in env:
            rotation_kwargs["generated_length"] = int(env["rotation.generated_length"])

        breach_kwargs: dict[str, Any] = {}
        if "breach.base_url" in env:
            breach_kwargs["base_url"] = env["breach.base_url"]
        if "breach.request_delay" in env:
            breach_kwargs["request_delay"] = float(env["breach.request_delay"])
        if "breach.timeout" in env:
            breach_kwargs["timeout"] = float(env["breach.timeout"])

        similarity_kwargs: dict[str, Any] = {}
        if "similarity.threshold" in env:
            similarity_kwargs["threshold"] = float(env["similarity.threshold"])
        if "similarity.max_entries" in env:
            similarity_kwargs["max_entries"] = int(env["similarity.max_entries"])

        history_kwargs: dict[str, Any] = {}
        if "history.retention_count" in env:
            history_kwargs["retention_count"] = int(env["history.retention_count"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env:
            logging_kwargs["level"] = env["logging.level"]
        if "logging.enable_console" in env:
            logging_kwargs["enable_console"] = _parse_bool(env["logging.enable_console"])
        if "logging.enable_file" in env:
            logging_kwargs["enable_file"] = _parse_bool(env["logging.enable_file"])
        if "logging.enable_json" in env:
            logging_kwargs["enable_json"] = _parse_bool(env["logging.enable_json"])

        app_kwargs: dict[str, Any] = {}
        if "app.environment" in env:
            app_kwargs["environment"] = env["app.environment"].lower()

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            cipher=CipherConfig(**cipher_kwargs),
            rotation=RotationConfig(**rotation_kwargs) if rotation_kwargs else None,
            breach=BreachConfig(**breach_kwargs) if breach_kwargs else None,
            similarity=SimilarityConfig(**similarity_kwargs) if similarity_kwargs else None,
            history=HistoryConfig(**history_kwargs) if history_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
            app=AppConfig(**app_kwargs) if app_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert CREDGUARD_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    def ensure_directories(self) -> None:
        """Create all required directories with secure permissions."""
        import stat

        for directory in (self._paths.data_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

            # Set restrictive permissions on Unix-like systems
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700 - owner only

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return (
            f"SecureConfig(hash={self._config_hash}, app={self._app.app_name}, "
            f"environment={self._app.environment})"
        )

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("SecureConfig is immutable after initialization")
        super().__setattr__(name, value)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
