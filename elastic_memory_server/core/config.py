"""Configuration loading with environment variable integration and validation."""

import os
from typing import Dict, Any

from pydantic import ValidationError

from .types import MemoryServerConfig
from .errors import ConfigurationError

ENV_PREFIX = "ESMS_"


def load_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Load environment variables with the given prefix and convert to appropriate types."""
    overrides: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            field_name = key[len(prefix) :].lower()

            # Nested sections, e.g. ESMS_INSTANCE__PORT
            if "__" in field_name:
                parts = field_name.split("__")
                if len(parts) == 2:
                    section, sub_field = parts
                    overrides.setdefault(section, {})[sub_field] = _convert_env_value(value)
                continue

            overrides[field_name] = _convert_env_value(value)

    return overrides


def _convert_env_value(value: str) -> Any:
    """Convert string environment value to appropriate Python type."""
    if not value:
        return None

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if value.lower() in ("true", "yes", "on"):
        return True
    elif value.lower() in ("false", "no", "off"):
        return False

    if "," in value:
        return [item.strip() for item in value.split(",")]

    return value


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(**overrides: Any) -> MemoryServerConfig:
    """Build a MemoryServerConfig from the environment and explicit overrides.

    Precedence, highest first: explicit overrides, ``ESMS_*`` environment
    variables, model defaults.
    """
    config_data = _merge(load_env_overrides(), overrides)

    # Single-token args come back as a plain string
    instance = config_data.get("instance")
    if isinstance(instance, dict) and isinstance(instance.get("args"), str):
        instance["args"] = [instance["args"]]

    try:
        return MemoryServerConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
