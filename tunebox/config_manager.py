"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
The CONFIG_SCHEMA provides rich metadata for building user-friendly configuration UIs.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .database import ConfigRepository, Database

# Configuration groups define the logical sections in the config UI
CONFIG_GROUPS = {
    "library": {"label": "Library", "order": 1},
    "uploads": {"label": "Uploads & Storage", "order": 2},
    "player": {"label": "Player", "order": 3},
}

# Schema defining metadata for each editable configuration key
CONFIG_SCHEMA = {
    "unknown_artist": {
        "group": "library",
        "label": "Unknown Artist Name",
        "description": "Artist recorded for uploads that do not specify one.",
        "control": "text",
    },
    "upload_directory": {
        "group": "uploads",
        "label": "Upload Directory",
        "description": "Where uploaded audio files are stored. Leave empty for default (~/.tunebox/uploads).",
        "control": "text",
        "placeholder": "~/.tunebox/uploads",
    },
    "max_upload_mb": {
        "group": "uploads",
        "label": "Maximum Upload Size",
        "description": "Largest accepted audio file, in megabytes.",
        "control": "slider",
        "min": 1,
        "max": 500,
        "step": 1,
        "display_format": "megabytes",
    },
    "allowed_extensions": {
        "group": "uploads",
        "label": "Allowed File Types",
        "description": "Comma-separated list of accepted audio file extensions.",
        "control": "text",
    },
    "default_volume": {
        "group": "player",
        "label": "Default Volume",
        "description": "Starting volume for the player.",
        "control": "slider",
        "min": 0,
        "max": 1,
        "step": 0.05,
        "display_format": "percent",
    },
}


class ConfigManager:
    """Manages configuration stored in database."""

    DEFAULTS = {
        "upload_directory": None,  # Will default to ~/.tunebox/uploads
        "unknown_artist": "Unknown Artist",
        "max_upload_mb": "50",
        "allowed_extensions": ".mp3,.wav,.ogg,.flac,.m4a,.aac",
        "default_volume": "0.7",
    }

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        """Get configuration value as boolean."""
        value = self.get(key)
        if value is None or value == "":
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def get_list(self, key: str) -> List[str]:
        """Get a comma-separated configuration value as a list of trimmed items."""
        value = self.get(key)
        if not value:
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def get_upload_directory(self) -> Path:
        """Get the upload directory from config, creating it if needed."""
        upload_dir = self.get("upload_directory")
        if upload_dir is None:
            upload_dir = str(Path.home() / ".tunebox" / "uploads")

        upload_path = Path(upload_dir).expanduser()
        upload_path.mkdir(parents=True, exist_ok=True)
        return upload_path

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        return self.repository.set(key, str(value))

    def get_all(self) -> dict:
        """
        Get all configuration values.

        Returns:
            Dictionary of all configuration key-value pairs
        """
        entries = self.repository.get_all()
        config = {entry.key: entry.value for entry in entries}

        result = self.DEFAULTS.copy()
        result.update(config)
        return result

    def get_config_schema(self) -> Dict[str, dict]:
        """Get the configuration schema for editable keys."""
        return {key: dict(key_def) for key, key_def in CONFIG_SCHEMA.items()}

    def get_config_groups(self) -> Dict[str, dict]:
        """Get the configuration group definitions."""
        return CONFIG_GROUPS.copy()

    def get_full_config(self) -> dict:
        """
        Get complete configuration data for the UI.

        Returns:
            Dictionary with 'values', 'schema', and 'groups' keys.
        """
        return {
            "values": self.get_all(),
            "schema": self.get_config_schema(),
            "groups": self.get_config_groups(),
        }
