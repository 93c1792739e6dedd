"""
Configuration management for occprobe.

Configuration comes from environment variables; the CLI overrides
individual values with flags. This module provides typed configuration
classes with validation.

Invariants:
    - All settings have sensible defaults for a local run
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing runs unchanged
    - Mirror every new setting as a CLI flag in main.py
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .store.base import ReadConsistency

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported store backends."""

    DYNAMODB = "dynamodb"
    MEMORY = "memory"


@dataclass(frozen=True)
class DynamoDBConfig:
    """DynamoDB backend configuration.

    Attributes:
        table_name: Table with key schema id (S, HASH) + version (N, RANGE)
        region: AWS region
        endpoint_url: Custom endpoint URL (for DynamoDB Local)
        profile: Named AWS profile (e.g. an SSO profile)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
        session_token: AWS session token (optional)
    """

    table_name: str = "test_table"
    region: str = "eu-west-1"
    endpoint_url: str | None = None
    profile: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None

    @classmethod
    def from_env(cls) -> DynamoDBConfig:
        """Load configuration from environment variables."""
        return cls(
            table_name=os.getenv("OCCPROBE_TABLE", "test_table"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "eu-west-1")),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL"),
            profile=os.getenv("AWS_PROFILE"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            session_token=os.getenv("AWS_SESSION_TOKEN"),
        )


@dataclass(frozen=True)
class ProbeConfig:
    """Probe run configuration.

    Attributes:
        children: Number of child entities, one worker each
        key_prefix: Prefix applied to every entity id
        read_consistency: Consistency of the latest-version query
        timeout_seconds: Overall budget for the concurrent run
        max_attempts: Write attempts per worker before giving up (None = unbounded)
    """

    children: int = 30
    key_prefix: str = ""
    read_consistency: ReadConsistency = ReadConsistency.STRONG
    timeout_seconds: float = 60.0
    max_attempts: int | None = None

    @property
    def parent_id(self) -> str:
        return f"{self.key_prefix}parent"

    @property
    def child_ids(self) -> list[str]:
        return [f"{self.key_prefix}child-{n}" for n in range(self.children)]

    @classmethod
    def from_env(cls) -> ProbeConfig:
        """Load configuration from environment variables."""
        max_attempts = os.getenv("OCCPROBE_MAX_ATTEMPTS")
        consistent = os.getenv("OCCPROBE_CONSISTENT_READ", "true").lower() == "true"
        return cls(
            children=int(os.getenv("OCCPROBE_CHILDREN", "30")),
            key_prefix=os.getenv("OCCPROBE_KEY_PREFIX", ""),
            read_consistency=ReadConsistency.STRONG if consistent else ReadConsistency.EVENTUAL,
            timeout_seconds=float(os.getenv("OCCPROBE_TIMEOUT_SECONDS", "60")),
            max_attempts=int(max_attempts) if max_attempts else None,
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass(frozen=True)
class AppConfig:
    """Complete configuration.

    Attributes:
        backend: Which store backend to use
        dynamodb: DynamoDB configuration (if backend is DYNAMODB)
        probe: Probe run configuration
        observability: Logging configuration
    """

    backend: StoreBackend = StoreBackend.DYNAMODB
    dynamodb: DynamoDBConfig = field(default_factory=DynamoDBConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("OCCPROBE_BACKEND", "dynamodb").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid OCCPROBE_BACKEND '{backend_str}'. Must be one of: dynamodb, memory"
            )

        config = cls(
            backend=backend,
            dynamodb=DynamoDBConfig.from_env(),
            probe=ProbeConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.probe.children < 1:
            raise ValueError("OCCPROBE_CHILDREN must be at least 1")
        if self.probe.timeout_seconds <= 0:
            raise ValueError("OCCPROBE_TIMEOUT_SECONDS must be positive")
        if self.probe.max_attempts is not None and self.probe.max_attempts < 1:
            raise ValueError("OCCPROBE_MAX_ATTEMPTS must be at least 1")

        if self.backend == StoreBackend.DYNAMODB:
            if not self.dynamodb.table_name:
                raise ValueError("OCCPROBE_TABLE is required when OCCPROBE_BACKEND=dynamodb")
            if bool(self.dynamodb.access_key_id) != bool(self.dynamodb.secret_access_key):
                raise ValueError(
                    "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together"
                )

        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Configuration loaded",
            extra={
                "backend": self.backend.value,
                "table": self.dynamodb.table_name
                if self.backend == StoreBackend.DYNAMODB
                else None,
                "region": self.dynamodb.region
                if self.backend == StoreBackend.DYNAMODB
                else None,
                "endpoint": self.dynamodb.endpoint_url,
                "profile": self.dynamodb.profile,
                "children": self.probe.children,
                "key_prefix": self.probe.key_prefix,
                "read_consistency": self.probe.read_consistency.value,
                "timeout_seconds": self.probe.timeout_seconds,
                "max_attempts": self.probe.max_attempts,
            },
        )
