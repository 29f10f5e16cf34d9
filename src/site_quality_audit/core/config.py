"""Batch policy loading and management."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .types import BatchPolicy


def load_yaml(file_path: Path) -> dict[str, Any]:
    """Load YAML configuration file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed YAML as dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, encoding="utf-8") as f:
        result: dict[str, Any] = yaml.safe_load(f) or {}
        return result


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def policy_from_settings(settings: Any) -> dict[str, Any]:
    """Build the base policy dictionary from environment settings."""
    return {
        "dispatch": {
            "min_delay_ms": settings.dispatch_min_delay_ms,
            "max_delay_ms": settings.dispatch_max_delay_ms,
            "timeout_seconds": settings.dispatch_timeout_seconds,
        },
        "poll": {
            "interval_ms": settings.poll_interval_ms,
            "max_attempts": settings.poll_max_attempts,
        },
    }


def load_config(
    config_path: Path | None = None,
    base: dict[str, Any] | None = None,
    overrides: dict[str, Any] | None = None,
) -> BatchPolicy:
    """Load and merge the batch policy from defaults, a file and overrides.

    Args:
        config_path: Optional YAML policy file
        base: Base policy (usually from :func:`policy_from_settings`)
        overrides: Additional runtime overrides (e.g. CLI flags)

    Returns:
        Validated BatchPolicy instance

    Raises:
        ValueError: If the merged policy is invalid
    """
    config_dict: dict[str, Any] = dict(base or {})

    if config_path is not None:
        config_dict = merge_configs(config_dict, load_yaml(config_path))

    if overrides:
        config_dict = merge_configs(config_dict, overrides)

    try:
        return BatchPolicy(**config_dict)
    except ValidationError as e:
        raise ValueError(f"Invalid batch policy: {e}") from e
