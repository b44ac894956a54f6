# SPDX-License-Identifier: Apache-2.0
"""Centralized configuration loader with version validation."""

from __future__ import annotations

import os
import warnings
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from .settings import (
    CURRENT_CONFIG_VERSION,
    MIN_SUPPORTED_VERSION,
    LoggingConfig,
    RepoGuardConfig,
)

PathLike = Union[str, Path]

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigVersionError(RuntimeError):
    """Error when configuration version is incompatible."""

    pass


def load_config(path: PathLike, env: Optional[Mapping[str, str]] = None) -> RepoGuardConfig:
    """Load and validate configuration from a YAML file.

    ``${VAR}`` references are expanded from the environment before parsing,
    kebab-case keys are accepted, and environment overrides are applied last.

    Args:
        path: Path to YAML configuration file
        env: Environment to read overrides from (defaults to ``os.environ``)

    Returns:
        RepoGuardConfig instance

    Raises:
        ConfigVersionError: If config version is missing, too old, or incompatible
        FileNotFoundError: If the YAML file doesn't exist
        ValueError: If the YAML is invalid or contains invalid configuration
    """
    yaml_path = Path(path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(yaml_path, "r") as f:
            yaml_content = f.read()

        cfg_dict = yaml.safe_load(os.path.expandvars(yaml_content))
        if cfg_dict is None:
            cfg_dict = {}
        if not isinstance(cfg_dict, dict):
            raise ValueError("YAML file must contain a dictionary at the root level")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}") from e

    return config_from_dict(cfg_dict, env=env)


def config_from_dict(
    data: Mapping[str, Any], env: Optional[Mapping[str, str]] = None
) -> RepoGuardConfig:
    """Validate a configuration mapping (already parsed from YAML or built in code)."""
    normalized = _normalize_keys(data)

    ver = str(normalized.get("config_version", "") or "")
    if not ver:
        raise ConfigVersionError('config_version missing. Add `config_version: "1"` to your YAML.')
    if ver < MIN_SUPPORTED_VERSION:
        raise ConfigVersionError(
            f"Config version {ver} is too old. Minimum supported is {MIN_SUPPORTED_VERSION}."
        )
    if ver > CURRENT_CONFIG_VERSION:
        warnings.warn(
            f"This release understands config_version {CURRENT_CONFIG_VERSION}, "
            f"but file is {ver}. Attempting best-effort parse.",
            UserWarning,
            stacklevel=2,
        )
    normalized["config_version"] = ver

    try:
        config = RepoGuardConfig(**normalized)
    except PydanticValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    return apply_env_overrides(config, os.environ if env is None else env)


def apply_env_overrides(config: RepoGuardConfig, env: Mapping[str, str]) -> RepoGuardConfig:
    """Apply ``REPOGUARD_*`` environment overrides on top of ``config``."""
    updates: dict[str, Any] = {}

    if env.get("REPOGUARD_DISABLE_QUERY_MONITORING", "").lower() in _TRUTHY:
        updates["query_monitor"] = config.query_monitor.model_copy(update={"enabled": False})
    if env.get("REPOGUARD_DB_PATH"):
        updates["database"] = config.database.model_copy(update={"path": env["REPOGUARD_DB_PATH"]})
    if env.get("REPOGUARD_LOG_LEVEL"):
        updates["logging"] = LoggingConfig(
            level=env["REPOGUARD_LOG_LEVEL"], format=config.logging.format
        )

    return config.model_copy(update=updates) if updates else config


def _normalize_keys(data: Any) -> Any:
    """Recursively convert kebab-case keys to snake_case."""
    if isinstance(data, Mapping):
        return {str(key).replace("-", "_"): _normalize_keys(value) for key, value in data.items()}
    return data


__all__ = ["ConfigVersionError", "apply_env_overrides", "config_from_dict", "load_config"]
