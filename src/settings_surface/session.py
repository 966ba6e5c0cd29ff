"""Settings session: the boundary a renderer talks to.

A session owns the value store, derived enablement and validation state for
one namespace and walks through the lifecycle

    UNINITIALIZED -> READY -> (EDITING <-> READY) -> CLOSED

Every call runs to completion synchronously, including recomputation of
dependents, validation and callbacks, before it returns.

Example:
    session = SettingsSession.from_config(config, callbacks=SessionCallbacks(
        on_settings_saved=lambda: print("saved"),
    ))
    session.open()
    session.set_field_value("enabled", True)
    if session.can_commit():
        session.commit()
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .dependencies import DependencyEvaluator, EvaluationResult
from .errors import SchemaError
from .schema import Schema, parse_schema
from .storage import PersistenceAdapter, get_persistence_adapter
from .store import ValueStore
from .validation import ValidationEngine, ValidationResult

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of a settings session."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    EDITING = "editing"
    CLOSED = "closed"


class ChangeKind(Enum):
    """What a ChangeEvent reports."""

    VALUE = "value"
    ENABLED = "enabled"
    EXPANDED = "expanded"
    VALIDITY = "validity"
    RESET = "reset"


@dataclass(frozen=True)
class ChangeEvent:
    """Notification that part of the session state changed.

    Attributes:
        kind: Which part of the state changed.
        target_id: Field or group id ("" for RESET).
        value: The new value, enablement, expansion or validity.
    """

    kind: ChangeKind
    target_id: str = ""
    value: Any = None


@dataclass
class SessionCallbacks:
    """Optional hooks invoked synchronously by the session.

    Attributes:
        on_settings_loaded: After ``init()`` loaded values.
        on_dialog_opened: After ``open()``.
        on_dialog_closed: After ``commit()``, ``cancel()`` or closing while editing.
        on_settings_saved: After ``commit()`` flushed values.
        on_setting_changed: After ``set_field_value(id, value)``.
    """

    on_settings_loaded: Optional[Callable[[], None]] = None
    on_dialog_opened: Optional[Callable[[], None]] = None
    on_dialog_closed: Optional[Callable[[], None]] = None
    on_settings_saved: Optional[Callable[[], None]] = None
    on_setting_changed: Optional[Callable[[str, Any], None]] = None


ChangeListener = Callable[[ChangeEvent], None]


class SettingsSession:
    """Reactive settings state for one namespace."""

    def __init__(
        self,
        schema: Schema,
        namespace: Optional[str] = None,
        adapter: Optional[PersistenceAdapter] = None,
        callbacks: Optional[SessionCallbacks] = None,
    ):
        """Create an uninitialized session.

        Args:
            schema: The parsed schema.
            namespace: Storage namespace. Defaults to the schema's config_id.
            adapter: Persistence adapter. Defaults to the process-wide adapter.
            callbacks: Renderer hooks.

        Raises:
            SchemaError: If no namespace is given and the schema has no config_id.
        """
        namespace = namespace or schema.config_id
        if not namespace:
            raise SchemaError("a namespace or config_id is required")

        self._schema = schema
        self._namespace = namespace
        self._adapter = adapter
        self._callbacks = callbacks or SessionCallbacks()
        self._state = SessionState.UNINITIALIZED
        self._listeners: List[ChangeListener] = []

        self._store = ValueStore(schema)
        self._evaluator = DependencyEvaluator(schema, self._store)
        self._validation = ValidationEngine(schema, self._store, self._evaluator)

    @classmethod
    def from_config(
        cls,
        configuration: Mapping[str, Any],
        namespace: Optional[str] = None,
        adapter: Optional[PersistenceAdapter] = None,
        callbacks: Optional[SessionCallbacks] = None,
    ) -> "SettingsSession":
        """Parse a configuration object and return an initialized session.

        Raises:
            SchemaError: If the configuration is malformed.
        """
        session = cls(parse_schema(configuration), namespace, adapter, callbacks)
        session.init()
        return session

    # ─────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def adapter(self) -> PersistenceAdapter:
        """The persistence adapter, defaulting to the process-wide one."""
        if self._adapter is None:
            self._adapter = get_persistence_adapter()
        return self._adapter

    def is_ready(self) -> bool:
        """True once ``init()`` has run and the session is not closed."""
        return self._state in (SessionState.READY, SessionState.EDITING)

    def is_open(self) -> bool:
        """True while the dialog is open for editing."""
        return self._state == SessionState.EDITING

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def init(self) -> None:
        """Load values from storage and compute derived state.

        Calling it again while READY reloads from storage, dropping any
        unsaved in-memory edits.
        """
        if self._state not in (SessionState.UNINITIALIZED, SessionState.READY):
            logger.warning(f"Cannot init session '{self._namespace}' while {self._state.value}")
            return

        self._store = ValueStore(self._schema)
        self._evaluator = DependencyEvaluator(self._schema, self._store)
        self._validation = ValidationEngine(self._schema, self._store, self._evaluator)

        self._store.load(self.adapter, self._namespace)
        self._evaluator.evaluate_all()
        self._validation.validate_all()

        self._state = SessionState.READY
        logger.debug(f"Session '{self._namespace}' ready")
        self._fire("on_settings_loaded")

    def open(self) -> bool:
        """Start editing. Returns False if the session is not READY."""
        if not self._require(SessionState.READY, "open"):
            return False
        self._state = SessionState.EDITING
        self._fire("on_dialog_opened")
        return True

    def commit(self) -> bool:
        """Flush all values and group states, then stop editing.

        Returns:
            True if saved; False when not editing or when a field is invalid.
        """
        if not self._require(SessionState.EDITING, "commit"):
            return False
        if not self._validation.can_commit():
            logger.warning(
                f"Not saving '{self._namespace}': invalid fields "
                f"{', '.join(self._validation.invalid_fields())}"
            )
            return False

        self._store.flush(self.adapter, self._namespace)
        self._fire("on_settings_saved")
        self._state = SessionState.READY
        self._fire("on_dialog_closed")
        return True

    def cancel(self) -> bool:
        """Stop editing without writing anything.

        In-memory edits are kept; call ``init()`` to reload stored values.
        """
        if not self._require(SessionState.EDITING, "cancel"):
            return False
        self._state = SessionState.READY
        self._fire("on_dialog_closed")
        return True

    def close(self) -> None:
        """Tear the session down. Closing while editing discards nothing to storage."""
        if self._state == SessionState.CLOSED:
            return
        was_editing = self._state == SessionState.EDITING
        self._state = SessionState.CLOSED
        if was_editing:
            self._fire("on_dialog_closed")
        self._listeners.clear()
        logger.debug(f"Session '{self._namespace}' closed")

    def reset_to_defaults(self) -> bool:
        """Reset every value and group to its default without persisting."""
        if self._state in (SessionState.UNINITIALIZED, SessionState.CLOSED):
            logger.warning(
                f"Cannot reset session '{self._namespace}' while {self._state.value}"
            )
            return False

        self._store.reset_all()
        self._evaluator.evaluate_all()
        self._validation.validate_all()
        self._emit(ChangeEvent(ChangeKind.RESET))
        return True

    # ─────────────────────────────────────────────────────────────────
    # Edits
    # ─────────────────────────────────────────────────────────────────

    def set_field_value(self, field_id: str, value: Any) -> bool:
        """Apply a user edit and recompute everything that depends on it.

        Disabled fields only ever hold their default, so writes to them are
        refused.

        Returns:
            False if the session is not editing or the field is disabled.

        Raises:
            KeyError: If the schema has no such field.
        """
        self._schema.field(field_id)
        if not self._require(SessionState.EDITING, "set_field_value"):
            return False
        if not self._evaluator.is_enabled(field_id):
            logger.warning(f"Ignoring write to disabled field '{field_id}'")
            return False

        before = self._validity_snapshot()
        stored = self._store.set(field_id, value)
        self._validation.validate(field_id)

        result = self._evaluator.evaluate_field_written(field_id)
        for affected in result.affected_fields:
            self._validation.validate(affected)

        self._emit(ChangeEvent(ChangeKind.VALUE, field_id, stored))
        self._emit_evaluation(result)
        self._emit_validity_changes(before)

        self._fire("on_setting_changed", field_id, stored)
        return True

    def toggle_group(self, group_id: str) -> Optional[bool]:
        """Flip a group's expansion and persist it immediately.

        Groups with ``collapsed_when`` follow their controlling field and
        cannot be toggled.

        Returns:
            The new expansion, or None if nothing changed.

        Raises:
            KeyError: If the schema has no such group.
        """
        group = self._schema.group(group_id)
        if not self._require(SessionState.EDITING, "toggle_group"):
            return None
        if group.collapsed_when is not None:
            logger.warning(
                f"Group '{group_id}' is controlled by "
                f"'{group.collapsed_when.controlling_field_id}' and cannot be toggled"
            )
            return None

        expanded = not self._store.is_expanded(group_id)
        self._store.set_expanded(group_id, expanded)
        self.adapter.write_group_state(self._namespace, group_id, expanded)
        self._emit(ChangeEvent(ChangeKind.EXPANDED, group_id, expanded))
        return expanded

    # ─────────────────────────────────────────────────────────────────
    # Read accessors
    # ─────────────────────────────────────────────────────────────────

    def get_field_value(self, field_id: str) -> Any:
        return self._store.get(field_id)

    def get_all_field_values(self) -> Dict[str, Any]:
        return self._store.snapshot()

    def is_field_enabled(self, field_id: str) -> bool:
        return self._evaluator.is_enabled(field_id)

    def is_group_expanded(self, group_id: str) -> bool:
        return self._store.is_expanded(group_id)

    def is_field_valid(self, field_id: str) -> bool:
        return self._validation.is_valid(field_id)

    def validation_result(self, field_id: str) -> ValidationResult:
        return self._validation.result(field_id)

    def invalid_fields(self) -> List[str]:
        return self._validation.invalid_fields()

    def can_commit(self) -> bool:
        return self._validation.can_commit()

    # ─────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback for value, enablement, expansion and validity changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Settings listener error: {e}")

    def _emit_evaluation(self, result: EvaluationResult) -> None:
        for field_id in result.reset_fields:
            self._emit(ChangeEvent(ChangeKind.VALUE, field_id, self._store.get(field_id)))
        for field_id in result.enabled_changed:
            self._emit(
                ChangeEvent(ChangeKind.ENABLED, field_id, self._evaluator.is_enabled(field_id))
            )
        for group_id in result.groups_changed:
            self._emit(
                ChangeEvent(ChangeKind.EXPANDED, group_id, self._store.is_expanded(group_id))
            )

    def _validity_snapshot(self) -> Dict[str, bool]:
        return {f.id: self._validation.is_valid(f.id) for f in self._schema.fields}

    def _emit_validity_changes(self, before: Dict[str, bool]) -> None:
        for field_id, was_valid in before.items():
            valid = self._validation.is_valid(field_id)
            if valid != was_valid:
                self._emit(ChangeEvent(ChangeKind.VALIDITY, field_id, valid))

    def _fire(self, name: str, *args: Any) -> None:
        callback = getattr(self._callbacks, name, None)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Callback {name} failed: {e}")

    def _require(self, state: SessionState, operation: str) -> bool:
        if self._state == state:
            return True
        logger.warning(
            f"Ignoring {operation}() on session '{self._namespace}': "
            f"state is {self._state.value}, expected {state.value}"
        )
        return False
