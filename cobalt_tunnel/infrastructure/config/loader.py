"""
Configuration loading and saving utilities.

This module loads the tunnel configuration from YAML or JSON files and
applies overrides from ``COBALT_TUNNEL_*`` environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from .models import ApplicationConfig

# file suffix -> format name
_SUFFIX_FORMATS = {
    '.yaml': "yaml",
    '.yml': "yaml",
    '.json': "json",
}

# env suffix -> (config section, field, converter)
_ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "CONNECT_TIMEOUT": ("tunnel", "connect_timeout", float),
    "LOGIN_TIMEOUT": ("tunnel", "login_timeout", float),
    "KEEPALIVE_INTERVAL": ("tunnel", "keepalive_interval", float),
    "KEEPALIVE_COUNT_MAX": ("tunnel", "keepalive_count_max", int),
    "KNOWN_HOSTS": ("tunnel", "known_hosts", str),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_DIR": ("logging", "log_directory", str),
}


class ConfigLoader:
    """Configuration loader supporting YAML, JSON and environment sources."""

    def __init__(self, env_prefix: str = "COBALT_TUNNEL_") -> None:
        self._env_prefix = env_prefix

    def load_config(self, config_file: Optional[str] = None) -> ApplicationConfig:
        """
        Load configuration from file and environment variables.

        Environment overrides replace single fields of the ``tunnel`` and
        ``logging`` sections; the rest of each section comes from the file.

        Args:
            config_file: Path to configuration file (optional)

        Returns:
            Loaded and validated configuration
        """
        config_data: Dict[str, Any] = self._read_file(config_file) if config_file else {}

        for section, overrides in self._environment_overrides().items():
            config_data[section] = {**(config_data.get(section) or {}), **overrides}

        try:
            config = ApplicationConfig.from_dict(config_data)
        except TypeError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

        config.config_file_path = config_file
        return config

    def save_config(self, config: ApplicationConfig, file_path: str, format: str = "yaml") -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration to save
            file_path: Output file path
            format: File format (yaml or json)
        """
        fmt = format.lower()
        if fmt not in ("yaml", "json"):
            raise ValueError(f"Unsupported format: {format}")

        config_data = config.to_dict()
        config_data.pop('config_file_path', None)

        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                if fmt == "yaml":
                    yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
                else:
                    json.dump(config_data, f, indent=2)
        except OSError as e:
            raise ValueError(f"Error writing {fmt.upper()} to {file_path}: {e}") from e

    def _read_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        fmt = _SUFFIX_FORMATS.get(path.suffix.lower())
        if fmt is None:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) if fmt == "yaml" else json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid {fmt.upper()} in {file_path}: {e}") from e
        except OSError as e:
            raise ValueError(f"Error reading {file_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {file_path} must be a mapping")
        return data

    def _environment_overrides(self) -> Dict[str, Dict[str, Any]]:
        """Collect ``section -> {field: value}`` from the environment."""
        overrides: Dict[str, Dict[str, Any]] = {}

        for name, (section, field_name, converter) in _ENV_OVERRIDES.items():
            env_var = f"{self._env_prefix}{name}"
            value = os.getenv(env_var)
            if value is None:
                continue

            try:
                overrides.setdefault(section, {})[field_name] = converter(value)
            except ValueError as e:
                raise ValueError(f"Invalid value for {env_var}: {value} ({e})") from e

        return overrides
