"""Local settings — JSON-based, merged over defaults.

Usage:
    from organizer_journal.core.settings import Settings

    settings = Settings()
    history_file = settings.history_file
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from organizer_journal.core.file_ops import get_default_app_dir
from organizer_journal.core.history import get_default_history_path
from organizer_journal.core.vault import get_default_vault_dir

_APP_DIR = get_default_app_dir()
_SETTINGS_FILE = _APP_DIR / "settings.json"

# Default settings, paths stored as strings
_DEFAULT_SETTINGS: dict[str, Any] = {
    # Storage
    "history_file": str(get_default_history_path(_APP_DIR)),
    "vault_dir": str(get_default_vault_dir(_APP_DIR)),
    # Behaviour
    "confirm_missing_files": True,
    # Logging
    "log_level": "INFO",
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings:
    """Manages settings with JSON persistence."""

    def __init__(self, settings_file: Path = _SETTINGS_FILE) -> None:
        self._settings_file = settings_file
        self._values: dict[str, Any] = dict(_DEFAULT_SETTINGS)
        self._load()

    def _load(self) -> None:
        """Load settings from disk, merging with defaults."""
        if self._settings_file.exists():
            try:
                with open(self._settings_file, encoding="utf-8") as f:
                    saved: dict[str, Any] = json.load(f)
                # Saved values override defaults only when the type matches
                for key, value in saved.items():
                    if key in self._values and isinstance(value, type(_DEFAULT_SETTINGS[key])):
                        self._values[key] = value
            except (json.JSONDecodeError, OSError, AttributeError):
                pass  # Use defaults if file is corrupted

    def _save(self) -> None:
        """Persist current settings to disk."""
        self._settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._settings_file, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)

    def get(self, key: str) -> Any:
        """Return a setting value, or None for unknown keys."""
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        """Change a setting and persist it.

        Raises:
            KeyError: If the key is unknown.
            TypeError: If the value type differs from the default's.
        """
        if key not in _DEFAULT_SETTINGS:
            raise KeyError(f"Unknown setting: {key}")
        if not isinstance(value, type(_DEFAULT_SETTINGS[key])):
            raise TypeError(f"Setting {key} expects {type(_DEFAULT_SETTINGS[key]).__name__}")
        self._values[key] = value
        self._save()

    @property
    def history_file(self) -> Path:
        """Path of the history JSON file."""
        return Path(self._values["history_file"]).expanduser()

    @property
    def vault_dir(self) -> Path:
        """Path of the safe deletion vault."""
        return Path(self._values["vault_dir"]).expanduser()

    @property
    def confirm_missing_files(self) -> bool:
        """Ask before undo/restore continues past missing files."""
        return bool(self._values["confirm_missing_files"])

    @property
    def log_level(self) -> int:
        """Logging level for the application."""
        name = str(self._values["log_level"]).upper()
        return getattr(logging, name) if name in _LOG_LEVELS else logging.INFO

    def all_settings(self) -> dict[str, Any]:
        """Return a copy of all settings."""
        return dict(self._values)

    def reset(self) -> None:
        """Reset all settings to defaults."""
        self._values = dict(_DEFAULT_SETTINGS)
        self._save()
