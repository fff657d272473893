"""
Configuration management for DocVault Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for MONGO_URL and SUPERUSERS
    - Credentials inside MONGO_URL are never logged

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Data layer options belong in ResourceOptions, not here
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from .data.options import ResourceOptions

logger = logging.getLogger(__name__)


def _csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def redact_url(url: str) -> str:
    """Strip credentials from a connection URL for logging."""
    parts = urlsplit(url)
    if parts.password is None and parts.username is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    MONGO = "mongo"


@dataclass(frozen=True)
class MongoConfig:
    """MongoDB connection configuration.

    Attributes:
        url: Connection string
        database: Database holding every collection
        server_selection_timeout_ms: How long to wait for a reachable server
        max_pool_size: Maximum connections in the driver pool
    """

    url: str = "mongodb://localhost:27017"
    database: str = "docvault"
    server_selection_timeout_ms: int = 5000
    max_pool_size: int = 100

    @classmethod
    def from_env(cls) -> MongoConfig:
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
            database=os.getenv("MONGO_DB", "docvault"),
            server_selection_timeout_ms=int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")),
            max_pool_size=int(os.getenv("MONGO_MAX_POOL_SIZE", "100")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Interface to bind
        port: Port to bind
        cors_origins: Origins allowed by the CORS middleware ("*" allows any)
    """

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=_csv(os.getenv("HTTP_CORS_ORIGINS", "*")),
        )


@dataclass(frozen=True)
class AccessConfig:
    """Authorization configuration.

    Attributes:
        superusers: User ids that bypass account scoping
        grants_collection: Collection the grant oracle reads
    """

    superusers: frozenset[str] = frozenset()
    grants_collection: str = "grants"

    @classmethod
    def from_env(cls) -> AccessConfig:
        """Load configuration from environment variables."""
        return cls(
            superusers=frozenset(_csv(os.getenv("SUPERUSERS", ""))),
            grants_collection=os.getenv("GRANTS_COLLECTION", "grants"),
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

    This aggregates all configuration sections and provides validation.

    Attributes:
        store_backend: Which document store backend to use
        mongo: MongoDB configuration (if store_backend is MONGO)
        http: HTTP server configuration
        access: Authorization configuration
        resources: Data layer options
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.MEMORY
    mongo: MongoConfig = field(default_factory=MongoConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    resources: ResourceOptions = field(default_factory=ResourceOptions)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "memory").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, mongo")

        config = cls(
            store_backend=store_backend,
            mongo=MongoConfig.from_env(),
            http=HttpConfig.from_env(),
            access=AccessConfig.from_env(),
            resources=ResourceOptions.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.MONGO:
            if not self.mongo.url:
                raise ValueError("MONGO_URL is required when STORE_BACKEND=mongo")
            if not self.mongo.database:
                raise ValueError("MONGO_DB is required when STORE_BACKEND=mongo")

        if not 0 < self.http.port < 65536:
            raise ValueError(f"HTTP_PORT out of range: {self.http.port}")

        resources = self.resources
        if not resources.trash_collection:
            raise ValueError("TRASH_COLLECTION must not be empty")
        if resources.trash_collection in resources.global_collections:
            raise ValueError("TRASH_COLLECTION cannot be a global collection")
        overlap = resources.include & resources.exclude
        if overlap:
            raise ValueError(f"Collections both included and excluded: {sorted(overlap)}")

        if self.store_backend == StoreBackend.MEMORY:
            logger.warning("Using in-memory store; all data is lost on restart")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "mongo_url": redact_url(self.mongo.url)
                if self.store_backend == StoreBackend.MONGO
                else None,
                "mongo_db": self.mongo.database
                if self.store_backend == StoreBackend.MONGO
                else None,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "superusers": len(self.access.superusers),
                "safe_delete": self.resources.safe_delete,
                "delete_level": self.resources.delete_level.value,
                "trash_collection": self.resources.trash_collection,
                "global_collections": sorted(self.resources.global_collections),
                "log_level": self.observability.log_level,
            },
        )
