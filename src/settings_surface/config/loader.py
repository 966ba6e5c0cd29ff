"""Configuration file loader."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from ..storage import (
    EnvFileBackend,
    HostBackend,
    MemoryBackend,
    PersistenceAdapter,
    YamlFileBackend,
    probe_host,
)
from .settings import EngineSettings

logger = logging.getLogger(__name__)

ENV_PREFIX = "SETTINGS_SURFACE_"

# Environment variable -> (section, key) overrides applied after the YAML file
ENV_OVERRIDES = {
    "NAMESPACE": (None, "namespace"),
    "SCHEMA": (None, "schema_path"),
    "BACKEND": ("storage", "backend"),
    "STORE_DIR": ("storage", "directory"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "file"),
}


# Global settings instance
_settings: Optional[EngineSettings] = None


def _expand_env_vars(obj):
    """Recursively expand ${VAR} patterns in strings."""
    if isinstance(obj, str):
        if obj.startswith("${") and obj.endswith("}"):
            var_name = obj[2:-1]
            return os.environ.get(var_name, "")
        return obj
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _apply_env_overrides(config_data: dict) -> dict:
    for suffix, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(ENV_PREFIX + suffix)
        if not value:
            continue
        if section is None:
            config_data[key] = value
        else:
            target = config_data.get(section)
            if not isinstance(target, dict):
                target = {}
                config_data[section] = target
            target[key] = value.upper() if section == "logging" and key == "level" else value
    return config_data


def load_config(
    config_path: Optional[Path] = None,
    env_path: Optional[Path] = None,
) -> EngineSettings:
    """Load configuration from YAML file and environment.

    Args:
        config_path: Path to the YAML config (default: config/settings_surface.yaml)
        env_path: Path to .env file (default: .env)

    Returns:
        Loaded EngineSettings instance
    """
    global _settings

    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    config_data = {}
    if config_path is None:
        config_path = Path("config/settings_surface.yaml")

    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    config_data = _expand_env_vars(config_data)
    config_data = _apply_env_overrides(config_data)

    _settings = EngineSettings(**config_data)
    return _settings


def get_settings() -> EngineSettings:
    """Get the current settings instance.

    Loads default settings if not yet loaded.
    """
    global _settings
    if _settings is None:
        _settings = EngineSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings to None (for testing)."""
    global _settings
    _settings = None


def build_adapter(settings: EngineSettings, host: Any = None) -> PersistenceAdapter:
    """Create the persistence adapter described by ``settings.storage``.

    With backend "auto" the backend is chosen at first use: the host API when
    ``host`` provides one, else the YAML file store.

    Args:
        settings: Engine settings.
        host: Optional host object providing ``get_value``/``set_value``.

    Returns:
        A PersistenceAdapter.
    """
    storage = settings.storage

    if storage.backend == "auto":
        return PersistenceAdapter(
            host=host, fallback=lambda: YamlFileBackend(storage.yaml_path)
        )
    if storage.backend == "host":
        if probe_host(host):
            return PersistenceAdapter(backend=HostBackend(host))
        logger.warning("Storage backend 'host' requested but no host API given; using YAML file")
        return PersistenceAdapter(backend=YamlFileBackend(storage.yaml_path))
    if storage.backend == "env":
        return PersistenceAdapter(backend=EnvFileBackend(storage.env_path))
    if storage.backend == "memory":
        return PersistenceAdapter(backend=MemoryBackend())
    return PersistenceAdapter(backend=YamlFileBackend(storage.yaml_path))
