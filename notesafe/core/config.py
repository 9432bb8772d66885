"""
Secure Configuration Module
===========================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Cost parameters validated against minimums
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Final, Optional

from notesafe.security.constants import (
    ARGON2_HASH_LENGTH,
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_SALT_LENGTH,
    ARGON2_TIME_COST,
    EPHEMERAL_SWEEP_INTERVAL_SECONDS,
    EPHEMERAL_TOKEN_TTL_SECONDS,
    HASHING_WORKERS,
    MIN_SALT_LENGTH,
    SESSION_LIFETIME_SECONDS,
    SESSION_RENEW_THRESHOLD_SECONDS,
    SESSION_RENEWAL_RETRIES,
)


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "api_key", "private", "credential", "pepper",
})


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

    return base / "NoteSafe"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "NoteSafe" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "NoteSafe"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "NoteSafe" / "logs"


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


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
    def session_db(self) -> Path:
        return self.data_dir / "sessions.db"

    @property
    def audit_log(self) -> Path:
        return self.log_dir / "audit.log"


@dataclass(frozen=True, slots=True)
class HashingConfig:
    """Immutable Argon2id cost configuration."""

    memory_cost: int = ARGON2_MEMORY_COST
    time_cost: int = ARGON2_TIME_COST
    parallelism: int = ARGON2_PARALLELISM
    hash_length: int = ARGON2_HASH_LENGTH
    salt_length: int = ARGON2_SALT_LENGTH
    workers: int = HASHING_WORKERS

    def __post_init__(self) -> None:
        """Validate hashing settings."""
        if self.parallelism < 1:
            raise ValueError("Parallelism must be at least 1")
        if self.memory_cost < 8 * self.parallelism:
            raise ValueError("Memory cost must be at least 8 KiB per lane")
        if self.time_cost < 1:
            raise ValueError("Time cost must be at least 1")
        if self.hash_length < 16:
            raise ValueError("Hash length must be at least 16 bytes")
        if self.salt_length < MIN_SALT_LENGTH:
            raise ValueError(f"Salt length must be at least {MIN_SALT_LENGTH} bytes")
        if self.workers < 1:
            raise ValueError("At least one hashing worker is required")


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Immutable session lifetime configuration."""

    lifetime_seconds: int = SESSION_LIFETIME_SECONDS
    renew_threshold_seconds: int = SESSION_RENEW_THRESHOLD_SECONDS
    renewal_retries: int = SESSION_RENEWAL_RETRIES

    def __post_init__(self) -> None:
        """Validate session settings."""
        if self.lifetime_seconds <= 0:
            raise ValueError("Session lifetime must be positive")
        if not 0 < self.renew_threshold_seconds < self.lifetime_seconds:
            raise ValueError("Renew threshold must be positive and shorter than the lifetime")
        if self.renewal_retries < 0:
            raise ValueError("Renewal retries cannot be negative")


@dataclass(frozen=True, slots=True)
class EphemeralTokenConfig:
    """Immutable one-time token configuration."""

    ttl_seconds: float = EPHEMERAL_TOKEN_TTL_SECONDS
    sweep_interval_seconds: float = EPHEMERAL_SWEEP_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        """Validate token settings."""
        if self.ttl_seconds <= 0:
            raise ValueError("Token TTL must be positive")
        if self.sweep_interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


_SECTIONS: Final[dict[str, type]] = {
    "paths": PathConfig,
    "hashing": HashingConfig,
    "session": SessionConfig,
    "tokens": EphemeralTokenConfig,
    "logging": LoggingConfig,
}


_CONVERTERS: Final[dict[str, Any]] = {
    "bool": _to_bool,
    "int": int,
    "float": float,
    "Path": Path,
    "str": str,
}


def _coerce(type_name: str, raw: str) -> Any:
    """Convert an environment string to the declared type of a dataclass field."""
    return _CONVERTERS.get(str(type_name), str)(raw)


class SecureConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = SecureConfig.load()
        lifetime = config.session.lifetime_seconds
        memory = config.hashing.memory_cost
    """

    __slots__ = ("_paths", "_hashing", "_session", "_tokens", "_logging", "_frozen", "_config_hash")

    _instance: Optional[SecureConfig] = None

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        hashing: Optional[HashingConfig] = None,
        session: Optional[SessionConfig] = None,
        tokens: Optional[EphemeralTokenConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use SecureConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_hashing", hashing or HashingConfig())
        object.__setattr__(self, "_session", session or SessionConfig())
        object.__setattr__(self, "_tokens", tokens or EphemeralTokenConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._paths}|{self._hashing}|{self._session}|{self._tokens}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def hashing(self) -> HashingConfig:
        return self._hashing

    @property
    def session(self) -> SessionConfig:
        return self._session

    @property
    def tokens(self) -> EphemeralTokenConfig:
        return self._tokens

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "NOTESAFE") -> SecureConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables use the prefix and double underscores to
        separate the section from the key.

        Examples:
            NOTESAFE_LOGGING__LEVEL=DEBUG
            NOTESAFE_SESSION__LIFETIME_SECONDS=604800
            NOTESAFE_HASHING__MEMORY_COST=131072
            NOTESAFE_TOKENS__TTL_SECONDS=900

        Args:
            env_prefix: Prefix for environment variables (default: NOTESAFE)

        Returns:
            Configured SecureConfig instance

        Raises:
            ValueError: If an override cannot be converted or fails validation
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        sections: dict[str, Any] = {}
        for section_name, section_cls in _SECTIONS.items():
            kwargs: dict[str, Any] = {}
            for f in fields(section_cls):
                raw = env_overrides.get(f"{section_name}.{f.name}")
                if raw is not None:
                    kwargs[f.name] = _coerce(f.type, raw)
            sections[section_name] = section_cls(**kwargs) if kwargs else None

        return cls(**sections)

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert NOTESAFE_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> SecureConfig:
        """Get or create the process-wide configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the process-wide instance. Use only for testing."""
        cls._instance = None

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
        return f"SecureConfig(hash={self._config_hash})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("SecureConfig is immutable after initialization")
        super().__setattr__(name, value)
