"""Field kinds and their per-kind value handling.

Each FieldKind has exactly one KindHandler entry describing how values of that
kind are written to storage, read back, and compared.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional


class FieldKind(Enum):
    """Kinds of setting fields.

    Attributes:
        TEXT: Free text (textbox).
        SECRET: Masked free text (password).
        BOOLEAN: On/off toggle (checkbox).
        SINGLE_CHOICE_EXCLUSIVE: One of a few visible choices (radio).
        SINGLE_CHOICE_LIST: One of a list of choices (dropdown).
    """

    TEXT = "textbox"
    SECRET = "password"
    BOOLEAN = "checkbox"
    SINGLE_CHOICE_EXCLUSIVE = "radio"
    SINGLE_CHOICE_LIST = "dropdown"

    @property
    def is_choice(self) -> bool:
        """True for kinds that require a list of choices."""
        return self in (FieldKind.SINGLE_CHOICE_EXCLUSIVE, FieldKind.SINGLE_CHOICE_LIST)

    @classmethod
    def from_name(cls, name: Any) -> Optional["FieldKind"]:
        """Look up a kind by enum value or member name (case-insensitive).

        Args:
            name: e.g. "checkbox", "BOOLEAN", or a FieldKind.

        Returns:
            The matching FieldKind or None.
        """
        if isinstance(name, FieldKind):
            return name
        if not isinstance(name, str):
            return None
        lowered = name.strip().lower()
        for kind in cls:
            if kind.value == lowered or kind.name.lower() == lowered:
                return kind
        return _KIND_ALIASES.get(lowered)


_KIND_ALIASES = {
    "text": FieldKind.TEXT,
    "secret": FieldKind.SECRET,
    "boolean": FieldKind.BOOLEAN,
    "bool": FieldKind.BOOLEAN,
    "select": FieldKind.SINGLE_CHOICE_LIST,
}


def to_bool(value: Any) -> bool:
    """Interpret a stored or user-supplied value as a boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def to_text(value: Any) -> str:
    """Interpret a value as text; booleans use their storage spelling."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _bool_equals(left: Any, right: Any) -> bool:
    return to_bool(left) == to_bool(right)


def _text_equals(left: Any, right: Any) -> bool:
    return to_text(left) == to_text(right)


@dataclass(frozen=True)
class KindHandler:
    """Value handling for one field kind.

    Attributes:
        serialize: Converts an in-memory value to its stored string.
        deserialize: Converts a stored (or raw user) value to the in-memory form.
        equals: Type-aware comparison used by enabled/collapsed conditions.
        default: Default value when a field declares none.
    """

    serialize: Callable[[Any], str]
    deserialize: Callable[[Any], Any]
    equals: Callable[[Any, Any], bool]
    default: Any


_TEXT_HANDLER = KindHandler(
    serialize=to_text,
    deserialize=to_text,
    equals=_text_equals,
    default="",
)

KIND_HANDLERS: Dict[FieldKind, KindHandler] = {
    FieldKind.TEXT: _TEXT_HANDLER,
    FieldKind.SECRET: _TEXT_HANDLER,
    FieldKind.BOOLEAN: KindHandler(
        serialize=to_text,
        deserialize=to_bool,
        equals=_bool_equals,
        default=False,
    ),
    FieldKind.SINGLE_CHOICE_EXCLUSIVE: _TEXT_HANDLER,
    FieldKind.SINGLE_CHOICE_LIST: _TEXT_HANDLER,
}


def handler_for(kind: FieldKind) -> KindHandler:
    """Return the handler registered for a kind."""
    return KIND_HANDLERS[kind]
