"""Tests for configuration system."""

import logging
import os
from pathlib import Path

import pytest

from settings_surface import MemoryBackend, YamlFileBackend, EnvFileBackend, HostBackend
from settings_surface.config import (
    EngineSettings,
    LoggingSettings,
    StorageSettings,
    build_adapter,
    get_settings,
    load_config,
    reset_settings,
)
from settings_surface.logging_config import ColorFormatter, configure_from_settings, configure_logging


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate each test from the environment and the cached settings."""
    for suffix in ("NAMESPACE", "SCHEMA", "BACKEND", "STORE_DIR", "LOG_LEVEL", "LOG_FILE"):
        monkeypatch.delenv(f"SETTINGS_SURFACE_{suffix}", raising=False)
    reset_settings()
    yield
    reset_settings()


class HostApi:
    def __init__(self):
        self.store = {}

    def get_value(self, key, default):
        return self.store.get(key, default)

    def set_value(self, key, value):
        self.store[key] = value


def test_default_settings():
    """Settings should have sensible defaults."""
    settings = EngineSettings()

    assert settings.namespace is None
    assert settings.schema_path is None
    assert settings.storage.backend == "auto"
    assert settings.storage.yaml_path == Path("./data") / "settings_store.yaml"
    assert settings.logging.level == "INFO"


def test_settings_override():
    """Settings should allow overriding defaults."""
    settings = EngineSettings(storage=StorageSettings(backend="env", directory="/tmp/x"))

    assert settings.storage.env_path == Path("/tmp/x/settings.env")
    # Other defaults should remain
    assert settings.logging.level == "INFO"


def test_unknown_keys_ignored():
    settings = EngineSettings(namespace="ns", not_a_setting=1)
    assert settings.namespace == "ns"


def test_load_yaml_config(tmp_path):
    """Should load settings from YAML file."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "namespace: my_script\n"
        "schema_path: schema.yaml\n"
        "storage:\n"
        "  backend: yaml\n"
        "  directory: store\n"
        "logging:\n"
        "  level: DEBUG\n",
        encoding="utf-8",
    )

    settings = load_config(config_path=config_path, env_path=tmp_path / "none.env")

    assert settings.namespace == "my_script"
    assert settings.schema_path == "schema.yaml"
    assert settings.storage.backend == "yaml"
    assert settings.storage.yaml_path == Path("store/settings_store.yaml")
    assert settings.logging.level == "DEBUG"
    assert get_settings() is settings


def test_missing_config_uses_defaults(tmp_path):
    settings = load_config(config_path=tmp_path / "absent.yaml", env_path=tmp_path / "none.env")
    assert settings == EngineSettings()


def test_env_var_expansion(tmp_path, monkeypatch):
    """Should expand ${VAR} patterns from environment."""
    monkeypatch.setenv("TEST_STORE_DIR", "/var/lib/settings")
    config_path = tmp_path / "config.yaml"
    config_path.write_text("storage:\n  directory: ${TEST_STORE_DIR}\n", encoding="utf-8")

    settings = load_config(config_path=config_path, env_path=tmp_path / "none.env")

    assert settings.storage.directory == "/var/lib/settings"


def test_env_overrides(tmp_path, monkeypatch):
    """SETTINGS_SURFACE_* variables should win over the YAML file."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text("namespace: from_file\nstorage:\n  backend: yaml\n", encoding="utf-8")
    monkeypatch.setenv("SETTINGS_SURFACE_NAMESPACE", "from_env")
    monkeypatch.setenv("SETTINGS_SURFACE_BACKEND", "memory")
    monkeypatch.setenv("SETTINGS_SURFACE_LOG_LEVEL", "warning")

    settings = load_config(config_path=config_path, env_path=tmp_path / "none.env")

    assert settings.namespace == "from_env"
    assert settings.storage.backend == "memory"
    assert settings.logging.level == "WARNING"


def test_dotenv_file_is_loaded(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("SETTINGS_SURFACE_STORE_DIR=from_dotenv\n", encoding="utf-8")

    try:
        settings = load_config(config_path=tmp_path / "absent.yaml", env_path=env_path)
        assert settings.storage.directory == "from_dotenv"
    finally:
        os.environ.pop("SETTINGS_SURFACE_STORE_DIR", None)


def test_get_settings_defaults():
    assert get_settings() == EngineSettings()
    assert get_settings() is get_settings()


@pytest.mark.parametrize(
    "backend,expected",
    [
        ("yaml", YamlFileBackend),
        ("env", EnvFileBackend),
        ("memory", MemoryBackend),
    ],
)
def test_build_adapter(backend, expected, tmp_path):
    settings = EngineSettings(storage=StorageSettings(backend=backend, directory=str(tmp_path)))
    adapter = build_adapter(settings)
    assert isinstance(adapter.backend, expected)


def test_build_adapter_auto_prefers_host(tmp_path):
    settings = EngineSettings(storage=StorageSettings(directory=str(tmp_path)))

    assert isinstance(build_adapter(settings, host=HostApi()).backend, HostBackend)

    adapter = build_adapter(settings)
    assert not adapter.is_bound
    assert isinstance(adapter.backend, YamlFileBackend)


def test_build_adapter_host_without_api_falls_back(tmp_path, caplog):
    settings = EngineSettings(storage=StorageSettings(backend="host", directory=str(tmp_path)))
    with caplog.at_level(logging.WARNING, logger="settings_surface.config.loader"):
        adapter = build_adapter(settings)
    assert isinstance(adapter.backend, YamlFileBackend)
    assert "no host API" in caplog.text


def test_color_formatter():
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "hello", None, None)
    colored = ColorFormatter("%(levelname)s %(message)s", use_color=True).format(record)
    plain = ColorFormatter("%(levelname)s %(message)s", use_color=False).format(record)

    assert colored.startswith("\x1b[33m")
    assert plain == "WARNING hello"
    assert record.levelname == "WARNING"


def test_configure_logging_with_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        log_file = tmp_path / "logs" / "engine.log"
        configure_from_settings(LoggingSettings(level="DEBUG", file=str(log_file), color=False))

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        logging.getLogger("settings_surface.test").debug("written to file")
        for handler in root.handlers:
            handler.flush()
        assert "written to file" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_configure_logging_unknown_level_defaults_to_info():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(level="chatty", use_color=False)
        assert root.level == logging.INFO
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
