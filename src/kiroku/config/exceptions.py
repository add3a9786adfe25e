"""Errors raised while loading or saving configuration."""


class ConfigError(Exception):
    """Raised when a configuration source is unreadable or fails validation."""
