"""Loading and saving of user settings used by the session engine.

The settings are stored as a list of dictionaries to preserve order.
Each dictionary holds a ``key`` and its ``value``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from session_engine import (
    DATA_DIR,
    DEFAULT_AUTOSTOP_SECONDS,
    DEFAULT_USER_NAME,
)
from session_engine.one_rm import OneRm

# Path to the JSON file where settings are persisted.
SETTINGS_PATH = DATA_DIR / "settings.json"

# Default settings to initialize the file on first run.
DEFAULT_SETTINGS: List[Dict[str, Any]] = [
    {"key": "user_name", "value": DEFAULT_USER_NAME},
    {"key": "one_rm", "value": int(OneRm.EPLEY)},
    {"key": "autostop", "value": True},
    {"key": "autostop_seconds", "value": DEFAULT_AUTOSTOP_SECONDS},
]

# Internal cache so settings are only read from disk once.
_settings_cache: List[Dict[str, Any]] | None = None


def load_settings() -> List[Dict[str, Any]]:
    """Load settings from :data:`SETTINGS_PATH` or create defaults."""
    if SETTINGS_PATH.exists():
        try:
            with SETTINGS_PATH.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
                if isinstance(data, list):
                    return data
        except (OSError, ValueError):
            logging.exception("Could not read settings from %s", SETTINGS_PATH)
    defaults = [item.copy() for item in DEFAULT_SETTINGS]
    save_settings(defaults)
    return defaults


def save_settings(settings: List[Dict[str, Any]]) -> None:
    """Persist ``settings`` to :data:`SETTINGS_PATH`."""
    SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
    with SETTINGS_PATH.open("w", encoding="utf-8") as fh:
        json.dump(settings, fh)


def get_settings() -> List[Dict[str, Any]]:
    """Return the cached settings list, loading from disk if needed."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = load_settings()
    return _settings_cache


def clear_cache() -> None:
    """Forget cached settings so the next lookup reads the file again."""
    global _settings_cache
    _settings_cache = None


def get_value(key: str) -> Any:
    """Fetch the value associated with ``key``.

    Keys missing from an older settings file fall back to
    :data:`DEFAULT_SETTINGS`.
    """
    for item in get_settings():
        if item.get("key") == key:
            return item.get("value")
    for item in DEFAULT_SETTINGS:
        if item["key"] == key:
            return item["value"]
    return None


def set_value(key: str, value: Any) -> None:
    """Update ``key`` with ``value`` and persist the change."""
    settings = get_settings()
    for item in settings:
        if item.get("key") == key:
            item["value"] = value
            break
    else:
        settings.append({"key": key, "value": value})
    save_settings(settings)
