"""Text rendering of session state for terminal front ends."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List

from .kinds import FieldKind, to_bool
from .schema import FieldSpec

if TYPE_CHECKING:
    from .session import SettingsSession


def format_field_value(field: FieldSpec, value: Any) -> str:
    """Render a field value as a human-readable string.

    Args:
        field: The field schema definition.
        value: The current value.

    Returns:
        Formatted display string.
    """
    match field.kind:
        case FieldKind.SECRET:
            return "••••••••" if value else "(not set)"
        case FieldKind.BOOLEAN:
            return "[x]" if to_bool(value) else "[ ]"
        case FieldKind.SINGLE_CHOICE_EXCLUSIVE | FieldKind.SINGLE_CHOICE_LIST:
            label = field.choice_label(value)
            if label is None:
                return f"{value} (not a listed choice)" if value else "(none)"
            return label if label == value else f"{label} ({value})"
        case _:
            return str(value) if value else "(empty)"


def _field_line(session: SettingsSession, field: FieldSpec, indent: str) -> str:
    value = format_field_value(field, session.get_field_value(field.id))
    line = f"{indent}{field.display_label}: {value}"
    if not session.is_field_enabled(field.id):
        line += "  [disabled]"
    result = session.validation_result(field.id)
    if not result.valid:
        line += f"  ! {result.error}"
    return line


def describe_session(session: SettingsSession) -> List[str]:
    """Produce the lines a text renderer would show, in layout order.

    Collapsed groups show only their header.
    """
    schema = session.schema
    lines: List[str] = []
    if schema.header_text:
        lines.append(f"═══ {schema.header_text} ═══")

    for entry in schema.layout():
        if entry.group_id is None:
            lines.append(_field_line(session, entry.fields[0], ""))
            continue
        if entry.group is None:
            for field in entry.fields:
                lines.append(_field_line(session, field, ""))
            continue

        expanded = session.is_group_expanded(entry.group_id)
        marker = "▾" if expanded else "▸"
        title = entry.group.display_name or entry.group_id
        lines.append(f"{marker} {title}")
        if expanded:
            for field in entry.fields:
                lines.append(_field_line(session, field, "    "))

    if schema.footer_text:
        lines.append(schema.footer_text)
    if not session.can_commit():
        lines.append(f"Cannot {schema.save_button_text.lower()}: fix invalid fields first")
    return lines
