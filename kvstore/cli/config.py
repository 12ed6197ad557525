"""Configuration management for the CLI."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import msgspec
import yaml

from kvstore.search.history import DEFAULT_HISTORY_LIMIT
from kvstore.server.app import DEFAULT_HOST, DEFAULT_PORT
from kvstore.storage.sweeper import DEFAULT_SWEEP_INTERVAL

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


class LoggingSettings(msgspec.Struct, kw_only=True):
    level: str | None = None
    file: str | None = None

    def level_value(self) -> int | None:
        """Numeric level for ``level``, or None when unset or unknown."""
        if not self.level:
            return None
        return LOG_LEVELS.get(self.level.strip().lower())


class HistorySettings(msgspec.Struct, kw_only=True):
    file: str | None = None
    limit: int = DEFAULT_HISTORY_LIMIT


class SweepSettings(msgspec.Struct, kw_only=True):
    interval_seconds: float = DEFAULT_SWEEP_INTERVAL


class ServerSettings(msgspec.Struct, kw_only=True):
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


class AppSettings(msgspec.Struct, kw_only=True):
    """Settings read from the YAML configuration files."""

    logging: LoggingSettings = msgspec.field(default_factory=LoggingSettings)
    history: HistorySettings = msgspec.field(default_factory=HistorySettings)
    sweep: SweepSettings = msgspec.field(default_factory=SweepSettings)
    server: ServerSettings = msgspec.field(default_factory=ServerSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppSettings:
        try:
            return msgspec.convert(data, cls)
        except msgspec.ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e


class Config:
    """Configuration management for the CLI application."""

    @staticmethod
    def from_file(path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ValueError(f"Error reading config file: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    @staticmethod
    def get_config_paths() -> list[Path]:
        """Get the default configuration file paths to check."""
        xdg_config_home = Path(
            os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        )
        return [
            xdg_config_home / "kvstore" / "config.yaml",
            Path("kvstore.yaml"),
            Path("config") / "kvstore.yaml",
        ]

    @staticmethod
    def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
        """Merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = _deep_merge(result, config)
        return result


def load_config(explicit: Path | None = None) -> dict[str, Any]:
    """Load configuration from the default paths, then ``explicit``.

    Later files win for conflicting keys. Unreadable default files are
    skipped; an unreadable explicit file is an error.
    """
    config: dict[str, Any] = {}
    for path in Config.get_config_paths():
        if path.exists():
            try:
                config = Config.merge_configs(config, Config.from_file(path))
            except ValueError as e:
                logging.getLogger(__name__).warning("ignoring %s: %s", path, e)
    if explicit is not None:
        config = Config.merge_configs(config, Config.from_file(explicit))
    return config


def load_settings(explicit: Path | None = None) -> AppSettings:
    return AppSettings.from_dict(load_config(explicit))


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
