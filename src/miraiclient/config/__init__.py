"""
config/ — Validated runtime settings (pydantic-settings + config.yaml).
"""

from miraiclient.config.settings import (
    ConfigError,
    EndpointConfig,
    LoggingConfig,
    Settings,
    get_settings,
    load_settings,
)

__all__ = [
    "ConfigError",
    "EndpointConfig",
    "LoggingConfig",
    "Settings",
    "get_settings",
    "load_settings",
]
