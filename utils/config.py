"""Configuration management for the trade journal service.

Provides:
- A small ``Config`` base with dict/JSON round-tripping
- ``EngineConfig``: debounce windows, cache size and storage location
  for the filter engine
- ``AppConfig``: API server settings

Every value has a default, so nothing needs to be set to run locally.
"""

import os as _os
from pathlib import Path
from typing import Dict, Any
import json


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a dictionary of its public attributes."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary, overriding defaults key by key."""
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


class EngineConfig(Config):
    """Filter-engine settings loaded from environment variables.

    Environment variables:
        JOURNAL_TEXT_DEBOUNCE_MS: Quiet period after free-text edits (default: 300)
        JOURNAL_DISCRETE_DEBOUNCE_MS: Quiet period after select/toggle edits (default: 150)
        JOURNAL_CACHE_SIZE: Max memoized aggregation results (default: 64)
        JOURNAL_STORAGE_NAMESPACE: Prefix for persisted keys (default: trade-journal)
        JOURNAL_STORAGE_PATH: JSON file backing persisted filters
            (default: ~/.trade_journal/storage.json)
    """

    def __init__(self) -> None:
        super().__init__()
        self.text_debounce_ms = _env_int("JOURNAL_TEXT_DEBOUNCE_MS", 300)
        self.discrete_debounce_ms = _env_int("JOURNAL_DISCRETE_DEBOUNCE_MS", 150)
        self.cache_size = _env_int("JOURNAL_CACHE_SIZE", 64, minimum=1)
        self.storage_namespace = _os.getenv("JOURNAL_STORAGE_NAMESPACE", "trade-journal")
        self.storage_path = Path(_os.path.expanduser(
            _os.getenv("JOURNAL_STORAGE_PATH", "~/.trade_journal/storage.json")
        ))

    @property
    def text_debounce(self) -> float:
        """Free-text debounce window in seconds."""
        return self.text_debounce_ms / 1000.0

    @property
    def discrete_debounce(self) -> float:
        return self.discrete_debounce_ms / 1000.0

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls()


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    Environment variables:
        APP_DB_PATH: Path to the SQLite trades database (default: trade_journal.sqlite)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(_os.getenv("APP_DB_PATH", "trade_journal.sqlite"))
        self.api_port = _env_int("APP_PORT", 8000, minimum=1)
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
