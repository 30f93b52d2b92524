"""Application settings and configuration management."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from weighttrend.tracking.materializer import WEIGHT_TREND_MODEL_VERSION
from weighttrend.tracking.units import WeightUnit


def _default_config_dir() -> Path:
    """Return the default configuration directory."""
    return Path.home() / ".weighttrend"


def _default_db_path() -> Path:
    """Return the default database path."""
    return _default_config_dir() / "weighttrend.db"


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: Path = field(default_factory=_default_db_path)


@dataclass
class TrendConfig:
    """Trend model configuration."""

    model_version: int = WEIGHT_TREND_MODEL_VERSION
    display_unit: WeightUnit = WeightUnit.KG


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class DefaultsConfig:
    """Default values for CLI operations."""

    user_id: int = 1
    history_days: int = 30


def _as_int(section: str, key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}") from None


@dataclass
class Settings:
    """Main application settings."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from YAML file or return defaults.

        Args:
            config_path: Path to config.yaml. If None, uses ~/.weighttrend/config.yaml

        Returns:
            Settings instance

        Raises:
            ValueError: If a configured value has the wrong type
        """
        if config_path is None:
            config_path = _default_config_dir() / "config.yaml"

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        settings = cls()

        # Parse database config
        if "database" in data:
            db_data = data["database"] or {}
            if "path" in db_data:
                settings.database.path = Path(db_data["path"]).expanduser()

        # Parse trend config
        if "trend" in data:
            trend_data = data["trend"] or {}
            if "model_version" in trend_data:
                settings.trend.model_version = _as_int(
                    "trend", "model_version", trend_data["model_version"]
                )
            if "display_unit" in trend_data:
                try:
                    settings.trend.display_unit = WeightUnit.parse(trend_data["display_unit"])
                except ValueError as e:
                    raise ValueError(f"trend.display_unit: {e}") from None

        # Parse logging config
        if "logging" in data:
            log_data = data["logging"] or {}
            if "level" in log_data:
                level = str(log_data["level"]).upper()
                if not isinstance(logging.getLevelName(level), int):
                    raise ValueError(f"logging.level is not a valid level: {log_data['level']!r}")
                settings.logging.level = level

        # Parse defaults
        if "defaults" in data:
            def_data = data["defaults"] or {}
            if "user_id" in def_data:
                settings.defaults.user_id = _as_int("defaults", "user_id", def_data["user_id"])
            if "history_days" in def_data:
                settings.defaults.history_days = _as_int(
                    "defaults", "history_days", def_data["history_days"]
                )

        return settings


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, loading from disk if needed."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings(config_path: Optional[Path] = None) -> Settings:
    """Force reload settings from disk."""
    global _settings
    _settings = Settings.load(config_path)
    return _settings
