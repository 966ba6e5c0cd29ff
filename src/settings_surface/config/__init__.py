"""Configuration management for the settings engine."""

from .loader import build_adapter, get_settings, load_config, reset_settings
from .settings import EngineSettings, LoggingSettings, StorageSettings

__all__ = [
    "EngineSettings",
    "StorageSettings",
    "LoggingSettings",
    "load_config",
    "get_settings",
    "reset_settings",
    "build_adapter",
]
