"""Preferences manager for agent-secretkit.

Persistent user preferences stored in the XDG Base Directory location:
~/.config/agent-secretkit/preferences.json

Known keys:
    config_path          Absolute path of the YAML config file
    default_environment  Environment used when the CLI gets no --env
    default_path         Secret path used when the CLI gets no --path
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "agent-secretkit"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"


def _load_preferences() -> Dict[str, Any]:
    """Load preferences, or an empty dict if the file is missing or unreadable."""
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse preferences file {PREFERENCES_FILE}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Failed to read preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Preferences file {PREFERENCES_FILE} does not hold a JSON object")
        return {}
    return data


def _save_preferences(preferences: Dict[str, Any]) -> None:
    try:
        PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
        with open(PREFERENCES_FILE, 'w') as f:
            json.dump(preferences, f, indent=2)
    except OSError as e:
        logger.error(f"Failed to save preferences to {PREFERENCES_FILE}: {e}")
        raise


def get_preference(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get preference value by key, or default when unset."""
    return _load_preferences().get(key, default)


def set_preference(key: str, value: str) -> None:
    """Set preference value."""
    preferences = _load_preferences()
    preferences[key] = value
    _save_preferences(preferences)
    logger.info(f"Preference '{key}' set to: {value}")


def clear_preference(key: str) -> None:
    """Remove preference by key. Missing keys are ignored."""
    preferences = _load_preferences()
    if key in preferences:
        del preferences[key]
        _save_preferences(preferences)
        logger.info(f"Preference '{key}' cleared")
    else:
        logger.debug(f"Preference '{key}' not found, nothing to clear")


def get_all_preferences() -> Dict[str, Any]:
    return _load_preferences()
