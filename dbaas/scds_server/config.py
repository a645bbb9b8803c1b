"""
Configuration management for SCDS Server.

Configuration comes from environment variables, with command-line flags
(--db, --listen) taking precedence in main.py. This module provides typed
configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The default database is in-memory; set SCDS_DB to persist data
    - Listen addresses use the "host:port" form; an empty host binds all interfaces

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable; deployments depend on them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def parse_listen_address(listen: str) -> tuple[str, int]:
    """Split a "host:port" listen address.

    Example:
        >>> parse_listen_address(":9999")
        ('0.0.0.0', 9999)

    Raises:
        ValueError: If the address has no valid port
    """
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address '{listen}'. Expected host:port")
    port_num = int(port)
    if not 0 < port_num < 65536:
        raise ValueError(f"Invalid port in listen address '{listen}'")
    return host or "0.0.0.0", port_num


@dataclass(frozen=True)
class StorageConfig:
    """Embedded database configuration.

    Attributes:
        db_url: ":memory:" or path to the SQLite database file
        busy_timeout_ms: SQLite busy timeout in milliseconds
        wal_mode: SQLite WAL mode enabled (file databases only)
    """

    db_url: str = ":memory:"
    busy_timeout_ms: int = 5000
    wal_mode: bool = True

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_url=os.getenv("SCDS_DB", ":memory:"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        listen: Address to bind (host:port)
        default_page_size: Page size when a list request gives none
        max_page_size: Upper bound on requested page size
    """

    listen: str = ":9999"
    default_page_size: int = 50
    max_page_size: int = 1000

    @property
    def host(self) -> str:
        return parse_listen_address(self.listen)[0]

    @property
    def port(self) -> int:
        return parse_listen_address(self.listen)[1]

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            listen=os.getenv("SCDS_LISTEN", ":9999"),
            default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "50")),
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", "1000")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Embedded database configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def with_overrides(
        self,
        db_url: str | None = None,
        listen: str | None = None,
        log_level: str | None = None,
    ) -> ServerConfig:
        """Return a copy with command-line overrides applied and validated."""
        config = ServerConfig(
            storage=replace(self.storage, db_url=db_url) if db_url else self.storage,
            http=replace(self.http, listen=listen) if listen else self.http,
            observability=replace(self.observability, log_level=log_level)
            if log_level
            else self.observability,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        parse_listen_address(self.http.listen)

        if self.http.default_page_size <= 0:
            raise ValueError("DEFAULT_PAGE_SIZE must be positive")
        if self.http.max_page_size < self.http.default_page_size:
            raise ValueError("MAX_PAGE_SIZE must be at least DEFAULT_PAGE_SIZE")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "db_url": self.storage.db_url,
                "listen": self.http.listen,
                "wal_mode": self.storage.wal_mode,
                "log_level": self.observability.log_level,
            },
        )

        if self.storage.db_url == ":memory:":
            logger.warning("Using in-memory database; data is lost on shutdown")
