"""Configuration loader for agent-secretkit."""
import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .interpolation import DEFAULT_MAX_DEPTH
from .models import DEFAULT_ENVIRONMENT, DEFAULT_PATH
from .preferences import get_preference

logger = logging.getLogger(__name__)

BACKEND_TYPES = ("memory", "file", "gcp")

DEFAULT_CONFIG: Dict[str, Any] = {
    "backend": {
        "type": "file",
        "file_path": str(Path("~") / ".config" / "agent-secretkit" / "secrets.json"),
    },
    "defaults": {
        "environment": DEFAULT_ENVIRONMENT,
        "path": DEFAULT_PATH,
    },
    "interpolation": {
        "max_depth": DEFAULT_MAX_DEPTH,
    },
}


def default_config_path() -> Path:
    return Path.home() / ".config" / "agent-secretkit" / "config.yml"


def _get_config_path() -> str:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/agent-secretkit/preferences.json)
    2. Default location: ~/.config/agent-secretkit/config.yml

    Returns:
        Absolute path to config file

    Raises:
        FileNotFoundError: If config file doesn't exist in any location
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Please set up your config file using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   secretkit config set-path /path/to/your/config.yml\n"
    )


def _merge_defaults(config: Dict[str, Any], config_path: str) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in config.items():
        if isinstance(merged.get(section), dict):
            if not isinstance(values, dict):
                raise ConfigError(f"'{section}' in config at {config_path} must be a mapping, got: {values!r}")
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def _validate_authentication(auth: Any, config_path: str) -> None:
    if not isinstance(auth, dict) or 'type' not in auth:
        raise ConfigError("Missing 'authentication.type' in config")

    if auth['type'] != 'service_account':
        raise ConfigError(
            f"Unsupported authentication type: {auth['type']}\n"
            f"Only 'service_account' is supported."
        )

    if 'service_account_path' not in auth:
        raise ConfigError(
            "Missing 'authentication.service_account_path' in config\n"
            "Please specify the absolute path to your service account JSON file."
        )

    service_account_path = auth['service_account_path']
    if not os.path.exists(service_account_path):
        raise ConfigError(
            f"Service account file not found at: {service_account_path}\n"
            f"Please ensure the file exists or update the path in {config_path}"
        )
    if not os.path.isfile(service_account_path):
        raise ConfigError(f"Service account path is not a file: {service_account_path}")


def validate_config(config: Any, config_path: str = "<memory>") -> Dict[str, Any]:
    """
    Validate a parsed config and fill in defaults.

    Raises:
        ConfigError: On any invalid or missing required value
    """
    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")
    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    merged = _merge_defaults(config, config_path)

    backend = merged['backend']
    if backend.get('type') not in BACKEND_TYPES:
        raise ConfigError(
            f"Unsupported backend type: {backend.get('type')}\n"
            f"Supported types: {', '.join(BACKEND_TYPES)}"
        )

    if backend['type'] == 'gcp':
        if not (merged.get('gcp') or {}).get('project_id') and not os.getenv("GCP_PROJECT"):
            raise ConfigError(
                f"Missing 'gcp' section in config at {config_path}\n"
                f"Required format:\n"
                f"gcp:\n"
                f"  project_id: your-project-id"
            )

    if 'authentication' in merged:
        _validate_authentication(merged['authentication'], config_path)

    defaults = merged['defaults']
    if not isinstance(defaults.get('environment'), str) or not defaults['environment']:
        raise ConfigError("'defaults.environment' must be a non-empty string")
    if not isinstance(defaults.get('path'), str) or not defaults['path'].startswith("/"):
        raise ConfigError("'defaults.path' must be a string starting with '/'")

    max_depth = merged['interpolation'].get('max_depth')
    if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 1:
        raise ConfigError(f"'interpolation.max_depth' must be a positive integer, got: {max_depth}")

    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Explicit path; resolved from preferences/default location if omitted

    Returns:
        Dict with backend, defaults and interpolation sections (plus gcp and
        authentication when configured)

    Raises:
        FileNotFoundError: If no config file can be located
        ConfigError: If config file is invalid
    """
    # Resolved on every call so preference changes apply immediately
    config_path = config_path or _get_config_path()

    if not os.path.exists(config_path):
        raise ConfigError(f"Configuration file not found at: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    config = validate_config(config, config_path)
    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using backend: {config['backend']['type']}")
    return config


def load_config_or_defaults() -> Dict[str, Any]:
    """Like load_config(), but fall back to built-in defaults when no file exists."""
    try:
        return load_config()
    except FileNotFoundError:
        logger.info("No configuration file found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)
