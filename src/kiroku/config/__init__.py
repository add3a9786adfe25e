"""Configuration models, precedence resolution, and the YAML config file."""

from .exceptions import ConfigError
from .manager import DEFAULT_CONFIG_PATH, ConfigManager
from .models import (
    DEFAULT_THEME,
    ArchiveSettings,
    KirokuConfig,
    LoggingSettings,
    SyncSettings,
    WatchSettings,
)
from .resolver import ENV_PREFIX, flatten_for_env, parse_env, resolve_with_precedence

__all__ = [
    "ArchiveSettings",
    "ConfigError",
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_THEME",
    "ENV_PREFIX",
    "KirokuConfig",
    "LoggingSettings",
    "SyncSettings",
    "WatchSettings",
    "flatten_for_env",
    "parse_env",
    "resolve_with_precedence",
]
