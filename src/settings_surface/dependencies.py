"""Derived enablement and group expansion.

A field with ``enabled_when = {c, v}`` is enabled while field ``c`` equals
``v``; a group with ``collapsed_when = {c, v}`` is collapsed while ``c``
equals ``v``. Equality uses the controlling field's kind, so a checkbox value
of True matches a required value of "true".

Propagation is single-level: writing field ``c`` re-evaluates the fields and
groups that name ``c`` directly, nothing further. A field reset to its default
because it became disabled does not in turn re-evaluate its own dependents.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .kinds import handler_for
from .schema import Condition, FieldSpec, GroupSpec, Schema
from .store import ValueStore

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """What changed during one evaluation pass.

    Attributes:
        enabled_changed: Fields whose enablement flipped.
        reset_fields: Fields reset to their default because they became disabled.
        groups_changed: Groups whose expansion flipped.
    """

    enabled_changed: List[str] = field(default_factory=list)
    reset_fields: List[str] = field(default_factory=list)
    groups_changed: List[str] = field(default_factory=list)

    @property
    def affected_fields(self) -> List[str]:
        """Fields whose validity must be recomputed."""
        seen = dict.fromkeys(self.enabled_changed + self.reset_fields)
        return list(seen)


class DependencyEvaluator:
    """Keeps per-field enablement and conditional group expansion current."""

    def __init__(self, schema: Schema, store: ValueStore):
        self._schema = schema
        self._store = store
        self._enabled: Dict[str, bool] = {}

    def condition_holds(self, condition: Condition) -> bool:
        """Test a condition against the controlling field's current value."""
        controlling = self._schema.field(condition.controlling_field_id)
        current = self._store.get(controlling.id)
        return handler_for(controlling.kind).equals(current, condition.required_value)

    def compute_enabled(self, setting_field: FieldSpec) -> bool:
        if setting_field.enabled_when is None:
            return True
        return self.condition_holds(setting_field.enabled_when)

    def compute_expanded(self, group: GroupSpec) -> Optional[bool]:
        """Expansion dictated by ``collapsed_when``, or None if unconditioned."""
        if group.collapsed_when is None:
            return None
        return not self.condition_holds(group.collapsed_when)

    def is_enabled(self, field_id: str) -> bool:
        """Current enablement of a field.

        Raises:
            KeyError: If the schema has no such field.
        """
        self._schema.field(field_id)
        return self._enabled.get(field_id, True)

    # ─────────────────────────────────────────────────────────────────
    # Evaluation passes
    # ─────────────────────────────────────────────────────────────────

    def evaluate_all(self) -> EvaluationResult:
        """Evaluate every field, then every conditional group, in schema order."""
        result = EvaluationResult()
        for setting_field in self._schema.fields:
            self._update_field(setting_field, result)
        for group in self._schema.groups:
            self._update_group(group, result)
        return result

    def evaluate_field_written(self, field_id: str) -> EvaluationResult:
        """Re-evaluate the direct dependents of a field that was just written."""
        result = EvaluationResult()
        for dependent in self._schema.dependents_of(field_id):
            self._update_field(dependent, result)
        for group in self._schema.groups_controlled_by(field_id):
            self._update_group(group, result)
        return result

    def _update_field(self, setting_field: FieldSpec, result: EvaluationResult) -> None:
        was_enabled = self._enabled.get(setting_field.id, True)
        enabled = self.compute_enabled(setting_field)
        self._enabled[setting_field.id] = enabled

        if enabled == was_enabled:
            return
        result.enabled_changed.append(setting_field.id)

        if not enabled:
            # Disabled fields never hold edited values.
            self._store.reset(setting_field.id)
            result.reset_fields.append(setting_field.id)
            logger.debug(f"Field '{setting_field.id}' disabled and reset to default")
        else:
            logger.debug(f"Field '{setting_field.id}' enabled")

    def _update_group(self, group: GroupSpec, result: EvaluationResult) -> None:
        expanded = self.compute_expanded(group)
        if expanded is None:
            return
        if self._store.is_expanded(group.id) != expanded:
            result.groups_changed.append(group.id)
        self._store.set_expanded(group.id, expanded)
