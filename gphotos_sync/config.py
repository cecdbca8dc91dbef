"""
Configuration management for Google Photos Sync.

Config file:
- config.json: schedules, batch sizes and file locations. Loaded once at
  startup and passed explicitly to the components that need it.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from .errors import ConfigError

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Keys that must be integers >= 1
_POSITIVE_INTS = (
    "search_days_back",
    "search_limit",
    "download_count",
    "download_batch_size",
    "download_files_parallel",
)


@dataclass
class AppConfig:
    """Application settings (see config.json)."""
    # Crontab expressions (5 fields); empty string disables the job
    refresh_token_schedule: str = "*/30 * * * *"
    search_new_items_schedule: str = "0 * * * *"
    download_photos_schedule: str = "*/10 * * * *"
    reconcile_schedule: str = ""

    search_days_back: int = 30
    search_limit: int = 500

    download_count: int = 100
    download_batch_size: int = 25
    download_files_parallel: int = 5
    download_timeout: float = 300.0

    storage_location: str = "google/photos"
    catalog_path: str = "secrets/photos.data"
    credentials_path: str = "secrets/credentials.json"
    token_path: str = "secrets/token.json"

    reconcile_mark: bool = True
    reconcile_unmark: bool = True

    log_level: str = "INFO"

    @property
    def storage_dir(self) -> Path:
        return Path(self.storage_location)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        """
        Build a config from a dict, filling in defaults for missing keys.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        if not isinstance(data, dict):
            raise ConfigError("config must be a JSON object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        try:
            config = cls(**data)
        except TypeError as e:
            raise ConfigError(str(e)) from e

        config.validate()
        return config

    def validate(self):
        """Raise ConfigError if any value is out of range."""
        for name in _POSITIVE_INTS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        timeout = self.download_timeout
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError(f"download_timeout must be a positive number, got {timeout!r}")

        for name in ("reconcile_mark", "reconcile_unmark"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false")

        if str(self.log_level).upper() not in _LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {self.log_level!r}")

    @property
    def log_level_value(self) -> int:
        return getattr(logging, str(self.log_level).upper())

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        """
        Load configuration from file. A missing file yields the defaults.

        Raises:
            ConfigError: If the file exists but is malformed
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Could not load {path}: {e}") from e

        return cls.from_dict(data)

    def save(self, path: Path):
        """Save configuration to file."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
