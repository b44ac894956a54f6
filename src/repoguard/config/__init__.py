# SPDX-License-Identifier: Apache-2.0
"""Configuration package for RepoGuard."""

from __future__ import annotations

from .loader import ConfigVersionError, apply_env_overrides, config_from_dict, load_config
from .settings import (
    CURRENT_CONFIG_VERSION,
    MIN_SUPPORTED_VERSION,
    DatabaseConfig,
    EventBusConfig,
    LoggingConfig,
    QueryMonitorConfig,
    RepoGuardConfig,
    RetryConfig,
)

__all__ = [
    "CURRENT_CONFIG_VERSION",
    "ConfigVersionError",
    "DatabaseConfig",
    "EventBusConfig",
    "LoggingConfig",
    "MIN_SUPPORTED_VERSION",
    "QueryMonitorConfig",
    "RepoGuardConfig",
    "RetryConfig",
    "apply_env_overrides",
    "config_from_dict",
    "load_config",
]
