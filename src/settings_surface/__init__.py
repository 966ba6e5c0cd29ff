"""Reactive settings-state engine.

This package keeps the values of a declarative settings surface, their derived
enabled/collapsed state, their validation status and a key-value store
consistent with each other. Rendering is left to the caller, which talks to a
SettingsSession.

Example usage:
    from settings_surface import MemoryBackend, PersistenceAdapter, SettingsSession

    session = SettingsSession.from_config(
        {
            "config_id": "my_script",
            "fields": [
                {"id": "enabled", "kind": "checkbox", "default_value": False},
                {
                    "id": "name",
                    "kind": "textbox",
                    "validation_pattern": "^[a-z]{3,}$",
                    "enabled_when": {"controlling_field_id": "enabled", "required_value": True},
                },
            ],
        },
        adapter=PersistenceAdapter(backend=MemoryBackend()),
    )
    session.open()
    session.set_field_value("enabled", True)
    session.set_field_value("name", "abc")
    session.commit()
"""

from .dependencies import DependencyEvaluator, EvaluationResult
from .display import describe_session, format_field_value
from .errors import SchemaError, SettingsSurfaceError, StorageError
from .kinds import KIND_HANDLERS, FieldKind, KindHandler, handler_for
from .schema import (
    Choice,
    Condition,
    FieldSpec,
    GroupSpec,
    LayoutEntry,
    Schema,
    load_schema,
    parse_schema,
)
from .session import (
    ChangeEvent,
    ChangeKind,
    SessionCallbacks,
    SessionState,
    SettingsSession,
)
from .storage import (
    EnvFileBackend,
    HostBackend,
    KeyValueBackend,
    MemoryBackend,
    PersistenceAdapter,
    YamlFileBackend,
    get_persistence_adapter,
    init_persistence_adapter,
    reset_persistence_adapter,
    select_backend,
)
from .store import ValueStore
from .validation import ValidationEngine, ValidationResult

__all__ = [
    # Errors
    "SettingsSurfaceError",
    "SchemaError",
    "StorageError",
    # Schema types
    "FieldKind",
    "KindHandler",
    "KIND_HANDLERS",
    "handler_for",
    "Choice",
    "Condition",
    "FieldSpec",
    "GroupSpec",
    "LayoutEntry",
    "Schema",
    "parse_schema",
    "load_schema",
    # Storage
    "KeyValueBackend",
    "MemoryBackend",
    "YamlFileBackend",
    "EnvFileBackend",
    "HostBackend",
    "PersistenceAdapter",
    "select_backend",
    "get_persistence_adapter",
    "init_persistence_adapter",
    "reset_persistence_adapter",
    # Engine
    "ValueStore",
    "DependencyEvaluator",
    "EvaluationResult",
    "ValidationEngine",
    "ValidationResult",
    # Session
    "SettingsSession",
    "SessionCallbacks",
    "SessionState",
    "ChangeEvent",
    "ChangeKind",
    # Display
    "format_field_value",
    "describe_session",
]
