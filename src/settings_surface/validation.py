"""Per-field validation and the commit gate."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .dependencies import DependencyEvaluator
from .kinds import to_text
from .schema import Schema
from .store import ValueStore

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a field value.

    Attributes:
        valid: Whether the value is valid.
        error: Error message if invalid.
        field_id: The field that was validated.
    """

    valid: bool
    error: Optional[str] = None
    field_id: str = ""


class ValidationEngine:
    """Validates fields against their patterns and aggregates ``can_commit``.

    A field is valid when it has no pattern, when it is disabled, or when its
    current value matches the pattern anywhere (``re.search``). Every field
    has an entry once ``validate_all`` has run; fields without a pattern are
    always True, so a schema with no patterns is always committable.
    """

    def __init__(self, schema: Schema, store: ValueStore, evaluator: DependencyEvaluator):
        self._schema = schema
        self._store = store
        self._evaluator = evaluator
        self._state: Dict[str, bool] = {}

    def check(self, field_id: str) -> bool:
        """Compute validity without recording it."""
        setting_field = self._schema.field(field_id)
        if setting_field.compiled_pattern is None:
            return True
        if not self._evaluator.is_enabled(field_id):
            return True
        value = to_text(self._store.get(field_id))
        return setting_field.compiled_pattern.search(value) is not None

    def validate(self, field_id: str) -> bool:
        """Recompute and record a field's validity.

        Raises:
            KeyError: If the schema has no such field.
        """
        valid = self.check(field_id)
        previous = self._state.get(field_id)
        self._state[field_id] = valid
        if previous is not None and previous != valid:
            logger.debug(f"Field '{field_id}' is now {'valid' if valid else 'invalid'}")
        return valid

    def validate_all(self) -> bool:
        """Validate every field in schema order; returns ``can_commit()``."""
        for setting_field in self._schema.fields:
            self.validate(setting_field.id)
        return self.can_commit()

    def is_valid(self, field_id: str) -> bool:
        self._schema.field(field_id)
        return self._state.get(field_id, True)

    def result(self, field_id: str) -> ValidationResult:
        """Validity of a field with its error message, for the renderer."""
        if self.is_valid(field_id):
            return ValidationResult(valid=True, field_id=field_id)
        return ValidationResult(
            valid=False,
            error=self._schema.field(field_id).error_message,
            field_id=field_id,
        )

    def can_commit(self) -> bool:
        return all(self._state.values())

    def invalid_fields(self) -> List[str]:
        return [f.id for f in self._schema.fields if not self._state.get(f.id, True)]
