"""
Configuration loading for the relation discovery system.
"""

import logging
import math
import os
import re
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


def load_env_file(env_path: Union[str, Path] = ".env"):
    """Load environment variables from .env file if it exists."""
    env_file = Path(env_path)
    if env_file.exists():
        with open(env_file, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def resolve_env_vars(value: Any) -> Any:
    """Resolve ${VAR_NAME} and ${VAR_NAME:-default} in string values, recursively."""
    if isinstance(value, dict):
        return {key: resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if isinstance(value, str) and "${" in value:
        def replace_env_var(match):
            var_name, default = match.group(1), match.group(2)
            if default is not None:
                return os.getenv(var_name) or default
            return os.getenv(var_name, match.group(0))

        return ENV_VAR_PATTERN.sub(replace_env_var, value)
    return value


def load_config(config_path: Union[str, Path] = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from a YAML file and resolve environment placeholders.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Configuration dictionary, one section per component

    Raises:
        ConfigurationError: If the file is missing or is not valid YAML
    """
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing configuration file: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    logger.debug(f"Loaded configuration from {config_path}")
    return resolve_env_vars(config)


def get_threshold(config: Dict[str, Any], key: str, default: float) -> float:
    """Read a [0, 1] threshold from a config section."""
    value = config.get(key, default)
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{key} must be between 0 and 1, got {value}")
    return value


def get_positive_int(config: Dict[str, Any], key: str, default: int) -> int:
    """Read a positive integer setting from a config section."""
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{key} must be a positive integer, got {value!r}")
    return value
