"""Configuration management with environment variable integration and validation."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List

import pydantic

from .types import AlloyKitConfig
from .errors import ConfigurationError
from .log import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "ALLOYKIT_"

# Flat installer keys (config file and environment) -> nested config fields
FLAT_KEYS: Dict[str, tuple] = {
    "install_dir": ("install_dir",),
    "instance_name": ("instance_name",),
    "grafana_port": ("ports", "grafana"),
    "prometheus_port": ("ports", "prometheus"),
    "loki_port": ("ports", "loki"),
    "alloy_port": ("ports", "alloy"),
}


def load_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Load environment variables with the given prefix.

    Values stay strings; the model coerces each one to its field's type, so
    ALLOYKIT_INSTANCE_NAME=2024 stays a name and ALLOYKIT_GRAFANA_PORT=4000
    becomes a port. Empty variables are treated as unset.
    """
    overrides: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix) or not value:
            continue
        # Convert environment variable name to config field name
        field_name = key[len(prefix) :].lower()

        # Handle nested configuration (e.g., ALLOYKIT_TIMEOUTS__IMAGE_PULL)
        if "__" in field_name:
            parts = field_name.split("__")
            if len(parts) == 2:
                section, sub_field = parts
                overrides.setdefault(section, {})[sub_field] = value
            continue

        overrides[field_name] = value

    return _nest_flat_keys(overrides)


def _nest_flat_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map flat installer keys like GRAFANA_PORT onto the nested model layout."""
    result: Dict[str, Any] = {}
    for key, value in data.items():
        path = FLAT_KEYS.get(key.lower())
        if path is None:
            result[key.lower()] = value
        elif len(path) == 1:
            result[path[0]] = value
        else:
            result.setdefault(path[0], {})[path[1]] = value
    return result


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_key_value(text: str) -> Dict[str, str]:
    """Parse `KEY=VALUE` lines. `#` starts a comment; surrounding quotes are stripped."""
    values: Dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export ") :].strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        values[key] = value
    return values


class ConfigManager:
    """Central configuration management."""

    def load_config(
        self, config_file: Optional[Path] = None, **overrides: Any
    ) -> AlloyKitConfig:
        """Load configuration from file and environment with CLI overrides."""

        # Precedence, highest first:
        # 1. CLI overrides
        # 2. Environment variables
        # 3. Config file data
        # 4. Model defaults

        config_data: Dict[str, Any] = {}

        if config_file is not None:
            if not config_file.exists():
                raise ConfigurationError(f"Config file not found: {config_file}")
            config_data = _deep_merge(config_data, self._load_from_file(config_file))

        config_data = _deep_merge(config_data, load_env_overrides())
        config_data = _deep_merge(
            config_data, _nest_flat_keys({k: v for k, v in overrides.items() if v is not None})
        )

        return build_config(config_data)

    def _load_from_file(self, config_file: Path) -> Dict[str, Any]:
        """Load configuration from a KEY=VALUE or YAML file."""
        try:
            text = config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to load config file {config_file}: {e}"
            ) from e

        if config_file.suffix.lower() in (".yml", ".yaml"):
            try:
                data = yaml.safe_load(text) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Failed to parse config file {config_file}: {e}"
                ) from e
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Config file {config_file} must contain a mapping"
                )
        else:
            data = parse_key_value(text)

        known = _filter_known_keys(_nest_flat_keys(data))
        logger.debug("Loaded %d setting(s) from %s", len(known), config_file)
        return known


def _filter_known_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys the model does not define; unknown file keys are ignored."""
    fields = set(AlloyKitConfig.model_fields)
    ignored = [key for key in data if key not in fields]
    for key in ignored:
        logger.debug("Ignoring unknown configuration key: %s", key)
    return {key: value for key, value in data.items() if key in fields}


def build_config(data: Dict[str, Any]) -> AlloyKitConfig:
    """Construct a validated config, reporting type errors as ConfigurationError."""
    try:
        return AlloyKitConfig(**data)
    except pydantic.ValidationError as e:
        errors: List[str] = []
        for err in e.errors():
            location = ".".join(str(part) for part in err.get("loc", ()))
            errors.append(f"{location}: {err.get('msg')}")
        raise ConfigurationError(
            f"Configuration validation failed with {len(errors)} error(s)",
            errors=errors,
        ) from e


# Global config manager instance
_config_manager = ConfigManager()


def load_config(**kwargs: Any) -> AlloyKitConfig:
    """Load global configuration."""
    return _config_manager.load_config(**kwargs)
