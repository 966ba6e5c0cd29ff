"""Shared fixtures for settings engine tests."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from settings_surface import (
    KeyValueBackend,
    MemoryBackend,
    PersistenceAdapter,
    StorageError,
    parse_schema,
)


class RecordingBackend(MemoryBackend):
    """Memory backend that records every write."""

    name = "recording"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__(initial)
        self.writes: List[Tuple[str, str]] = []

    def set(self, key: str, value: str) -> None:
        self.writes.append((key, value))
        super().set(key, value)


class FailingBackend(KeyValueBackend):
    """Backend whose every read and write fails."""

    name = "failing"

    def get(self, key: str) -> Optional[Any]:
        raise StorageError("read", key, OSError("disk on fire"))

    def set(self, key: str, value: str) -> None:
        raise StorageError("write", key, OSError("disk on fire"))


@pytest.fixture
def recording_backend():
    """A fresh recording backend."""
    return RecordingBackend()


@pytest.fixture
def adapter(recording_backend):
    """Adapter bound to the recording backend."""
    return PersistenceAdapter(backend=recording_backend)


@pytest.fixture
def scenario_config():
    """Checkbox A gating a validated textbox B."""
    return {
        "config_id": "scenario",
        "fields": [
            {"id": "A", "kind": "checkbox", "default_value": False},
            {
                "id": "B",
                "kind": "textbox",
                "default_value": "",
                "validation_pattern": "^[a-z]{3,}$",
                "enabled_when": {"controlling_field_id": "A", "required_value": True},
            },
        ],
    }


@pytest.fixture
def full_config():
    """Schema using every kind, groups and both kinds of conditions."""
    return {
        "config_id": "full",
        "header_text": "Script Settings",
        "fields": [
            {"id": "enabled", "kind": "checkbox", "default_value": True, "label": "Enabled"},
            {
                "id": "user",
                "kind": "textbox",
                "default_value": "guest",
                "validation_pattern": "^[a-z]+$",
                "error_message": "Lowercase letters only",
                "group_id": "account",
            },
            {"id": "token", "kind": "password", "group_id": "account"},
            {
                "id": "mode",
                "kind": "radio",
                "default_value": "fast",
                "choices": [
                    {"value": "fast", "display_text": "Fast"},
                    {"value": "safe", "display_text": "Safe"},
                ],
            },
            {
                "id": "level",
                "kind": "dropdown",
                "default_value": "1",
                "choices": [{"value": "1"}, {"value": "2"}, {"value": "3"}],
                "enabled_when": {"controlling_field_id": "mode", "required_value": "safe"},
                "group_id": "advanced",
            },
        ],
        "groups": [
            {"id": "account", "display_name": "Account", "default_expanded": True},
            {
                "id": "advanced",
                "display_name": "Advanced",
                "collapsed_when": {"controlling_field_id": "enabled", "required_value": False},
            },
        ],
    }


@pytest.fixture
def full_schema(full_config):
    return parse_schema(full_config)
