# SPDX-License-Identifier: Apache-2.0
"""Pydantic configuration models for RepoGuard."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Configuration versioning constants
CURRENT_CONFIG_VERSION = "1"
MIN_SUPPORTED_VERSION = "1"

DEFAULT_TRANSIENT_MARKERS = [
    "connection",
    "timeout",
    "timed out",
    "deadlock",
    "too many connections",
    "database is busy",
    "database is locked",
    "lock wait timeout",
    "server closed",
    "circuit breaker",
    "rate limit",
    "temporarily unavailable",
]
DEFAULT_NOT_FOUND_MARKERS = ["not found", "no rows", "does not exist"]
DEFAULT_CONSTRAINT_MARKERS = ["constraint", "violates", "unique", "duplicate key", "foreign key"]
DEFAULT_VALIDATION_MARKERS = ["validation", "invalid"]


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DatabaseConfig(_Section):
    """Location of the SQLite database backing the data-access client."""

    path: str = Field(default="data/db/repoguard.db", description="SQLite file or ':memory:'")


class RetryConfig(_Section):
    """Retry and error classification rules for repository calls."""

    max_retries: int = Field(default=3, ge=1, le=20, description="Total attempts per call")
    retry_delay_ms: int = Field(default=500, ge=0, description="Delay before the second attempt")
    backoff_factor: float = Field(default=1.0, ge=1.0, le=10.0)
    transient_markers: List[str] = Field(default_factory=lambda: list(DEFAULT_TRANSIENT_MARKERS))
    not_found_markers: List[str] = Field(default_factory=lambda: list(DEFAULT_NOT_FOUND_MARKERS))
    constraint_markers: List[str] = Field(default_factory=lambda: list(DEFAULT_CONSTRAINT_MARKERS))
    validation_markers: List[str] = Field(default_factory=lambda: list(DEFAULT_VALIDATION_MARKERS))

    @field_validator(
        "transient_markers", "not_found_markers", "constraint_markers", "validation_markers"
    )
    @classmethod
    def normalize_markers(cls, v: List[str]) -> List[str]:
        """Markers are matched case-insensitively against error messages."""
        normalized = [marker.strip().lower() for marker in v if marker and marker.strip()]
        if not normalized:
            raise ValueError("marker list cannot be empty")
        return normalized


class QueryMonitorConfig(_Section):
    """Query performance monitor thresholds."""

    enabled: bool = True
    collection_period_ms: int = Field(default=120_000, ge=1_000)
    slow_query_threshold_ms: float = Field(default=300.0, gt=0)
    n_plus_one_threshold: int = Field(default=5, ge=1)
    max_examples: int = Field(default=3, ge=0, le=50)
    min_tracked_duration_ms: float = Field(default=0.0, ge=0)


class EventBusConfig(_Section):
    """Domain event bus settings."""

    record_history: bool = True
    history_limit: int = Field(default=100, ge=1, le=100_000)


class LoggingConfig(_Section):
    """Logging level and format for the ``repoguard`` logger."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Unknown log level: {v}. Valid levels: {sorted(valid_levels)}")
        return v.upper()


class RepoGuardConfig(_Section):
    """Top-level configuration.

    Every section is optional; an empty YAML file (apart from
    ``config_version``) yields the documented defaults.
    """

    config_version: str = Field(
        default=CURRENT_CONFIG_VERSION, description="Configuration schema version"
    )
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    query_monitor: QueryMonitorConfig = Field(default_factory=QueryMonitorConfig)
    event_bus: EventBusConfig = Field(default_factory=EventBusConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


__all__ = [
    "CURRENT_CONFIG_VERSION",
    "DatabaseConfig",
    "EventBusConfig",
    "LoggingConfig",
    "MIN_SUPPORTED_VERSION",
    "QueryMonitorConfig",
    "RepoGuardConfig",
    "RetryConfig",
]
