"""In-memory values of a settings session."""

import logging
from typing import Any, Dict

from .kinds import handler_for, to_bool
from .schema import Schema
from .storage import PersistenceAdapter

logger = logging.getLogger(__name__)


class ValueStore:
    """Current value of every field and expansion of every group.

    Values are kept in their in-memory form (booleans for checkbox fields,
    strings for everything else); writes are coerced through the field kind's
    handler so the store never holds a value inconsistent with its kind.
    """

    def __init__(self, schema: Schema):
        self._schema = schema
        self._values: Dict[str, Any] = {}
        self._expanded: Dict[str, bool] = {}

    # ─────────────────────────────────────────────────────────────────
    # Fields
    # ─────────────────────────────────────────────────────────────────

    def get(self, field_id: str) -> Any:
        """Get a field's current value (its default if never set).

        Raises:
            KeyError: If the schema has no such field.
        """
        setting_field = self._schema.field(field_id)
        return self._values.get(field_id, setting_field.default_value)

    def set(self, field_id: str, value: Any) -> Any:
        """Store a value for a field, coerced to the field's kind.

        Returns:
            The value actually stored.

        Raises:
            KeyError: If the schema has no such field.
        """
        setting_field = self._schema.field(field_id)
        stored = handler_for(setting_field.kind).deserialize(value)
        self._values[field_id] = stored
        return stored

    def reset(self, field_id: str) -> Any:
        """Put a field back to its default value."""
        return self.set(field_id, self._schema.field(field_id).default_value)

    def snapshot(self) -> Dict[str, Any]:
        """All field values keyed by id, in schema order."""
        return {f.id: self.get(f.id) for f in self._schema.fields}

    # ─────────────────────────────────────────────────────────────────
    # Groups
    # ─────────────────────────────────────────────────────────────────

    def is_expanded(self, group_id: str) -> bool:
        group = self._schema.group(group_id)
        return self._expanded.get(group_id, group.default_expanded)

    def set_expanded(self, group_id: str, expanded: bool) -> None:
        self._schema.group(group_id)
        self._expanded[group_id] = bool(expanded)

    def group_snapshot(self) -> Dict[str, bool]:
        return {g.id: self.is_expanded(g.id) for g in self._schema.groups}

    # ─────────────────────────────────────────────────────────────────
    # Persistence
    # ─────────────────────────────────────────────────────────────────

    def load(self, adapter: PersistenceAdapter, namespace: str) -> None:
        """Seed every value from storage, falling back to defaults.

        Groups without a collapse condition take their stored expansion;
        conditional groups start at their default and are computed later by
        the dependency evaluator.
        """
        for setting_field in self._schema.fields:
            raw = adapter.read(namespace, setting_field.id, setting_field.default_value)
            self.set(setting_field.id, raw)

        for group in self._schema.groups:
            if group.collapsed_when is not None:
                self._expanded[group.id] = group.default_expanded
                continue
            stored = adapter.read_group_state(namespace, group.id, group.default_expanded)
            self._expanded[group.id] = to_bool(stored)

        logger.debug(f"Loaded {len(self._values)} values for '{namespace}'")

    def flush(self, adapter: PersistenceAdapter, namespace: str) -> None:
        """Write every value and every group expansion to storage."""
        for field_id, value in self.snapshot().items():
            adapter.write(namespace, field_id, value)
        for group_id, expanded in self.group_snapshot().items():
            adapter.write_group_state(namespace, group_id, expanded)
        logger.debug(f"Flushed {len(self._values)} values for '{namespace}'")

    def reset_all(self) -> None:
        """Put every field and group back to its schema default."""
        for setting_field in self._schema.fields:
            self._values[setting_field.id] = setting_field.default_value
        for group in self._schema.groups:
            self._expanded[group.id] = group.default_expanded
