"""Settings schema definitions.

This module turns a declarative configuration object into an immutable
Schema: an ordered tuple of FieldSpecs and the GroupSpecs they belong to.
Everything that can be checked about a configuration is checked here, so a
malformed schema fails before any session is built.

Example:
    schema = parse_schema({
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
    })
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import SchemaError
from .kinds import FieldKind, handler_for

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Invalid input"

_MISSING = object()


@dataclass(frozen=True)
class Choice:
    """One selectable value of a radio or dropdown field."""

    value: str
    display_text: str = ""

    @property
    def label(self) -> str:
        return self.display_text or self.value


@dataclass(frozen=True)
class Condition:
    """Equality test against another field's current value.

    Attributes:
        controlling_field_id: Id of the field whose value is tested.
        required_value: Value the controlling field is compared with.
    """

    controlling_field_id: str
    required_value: Any


@dataclass(frozen=True)
class FieldSpec:
    """Definition of a single setting field.

    Attributes:
        id: Unique key, also the storage key within the namespace.
        kind: Field kind determining value handling.
        default_value: Value used when nothing is stored or the field is disabled.
            Choice kinds default to their first choice and must name a listed one.
        choices: Selectable values for radio/dropdown kinds.
        validation_pattern: Optional regular expression the value must match.
        enabled_when: Optional condition gating whether the field is editable.
        group_id: Optional id of the group the field is shown in.
        label: Human-readable label for the renderer.
        error_message: Message shown by the renderer when the value is invalid.
        description: Help text for the renderer.
    """

    id: str
    kind: FieldKind
    default_value: Any = None
    choices: Tuple[Choice, ...] = ()
    validation_pattern: Optional[str] = None
    enabled_when: Optional[Condition] = None
    group_id: Optional[str] = None
    label: str = ""
    error_message: str = DEFAULT_ERROR_MESSAGE
    description: str = ""
    compiled_pattern: Optional[re.Pattern] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        """Check per-field invariants and normalize the default value."""
        if not self.id:
            raise SchemaError("field id must be a non-empty string")
        if self.kind.is_choice and not self.choices:
            raise SchemaError(
                f"{self.kind.value} fields require a non-empty list of choices",
                self.id,
            )
        if self.enabled_when is not None and self.enabled_when.controlling_field_id == self.id:
            raise SchemaError("enabled_when cannot reference the field itself", self.id)

        object.__setattr__(self, "choices", tuple(self.choices))
        handler = handler_for(self.kind)
        if self.default_value is not None:
            default = handler.deserialize(self.default_value)
        elif self.kind.is_choice:
            default = self.choices[0].value
        else:
            default = handler.default
        if self.kind.is_choice and default not in {c.value for c in self.choices}:
            raise SchemaError(f"default value {default!r} is not one of the choices", self.id)
        object.__setattr__(self, "default_value", default)

        if self.validation_pattern is not None:
            if not isinstance(self.validation_pattern, str):
                raise SchemaError(
                    f"validation pattern must be a string, got {self.validation_pattern!r}",
                    self.id,
                )
            try:
                compiled = re.compile(self.validation_pattern)
            except re.error as e:
                raise SchemaError(
                    f"invalid validation pattern {self.validation_pattern!r}: {e}",
                    self.id,
                ) from e
            object.__setattr__(self, "compiled_pattern", compiled)

    @property
    def display_label(self) -> str:
        return self.label or self.id

    def choice_label(self, value: Any) -> Optional[str]:
        """Return the display text of the choice matching ``value``, if any."""
        for choice in self.choices:
            if choice.value == value:
                return choice.label
        return None


@dataclass(frozen=True)
class GroupSpec:
    """Definition of a collapsible group of fields.

    Attributes:
        id: Unique key (shares the id space with fields).
        display_name: Header text for the renderer.
        default_expanded: Expansion used when nothing is stored.
        collapsed_when: Optional condition; when it holds the group is collapsed.
    """

    id: str
    display_name: str = ""
    default_expanded: bool = True
    collapsed_when: Optional[Condition] = None


@dataclass(frozen=True)
class LayoutEntry:
    """One top-level item of the settings surface, in display order.

    Ungrouped fields produce an entry with ``group_id`` None and a single
    field. Grouped fields are gathered into the entry of their group, placed
    where the group's first field appears. ``group`` is None when the fields
    reference a group that was not declared.
    """

    group_id: Optional[str]
    group: Optional[GroupSpec]
    fields: Tuple[FieldSpec, ...]


@dataclass(frozen=True)
class Schema:
    """Immutable, ordered collection of fields and groups.

    A Schema may be shared by any number of sessions.
    """

    fields: Tuple[FieldSpec, ...]
    groups: Tuple[GroupSpec, ...] = ()
    config_id: Optional[str] = None
    header_text: str = ""
    footer_text: str = ""
    save_button_text: str = "Save"
    cancel_button_text: str = "Cancel"
    _fields_by_id: Dict[str, FieldSpec] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )
    _groups_by_id: Dict[str, GroupSpec] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        """Index fields and groups and check cross-references."""
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "groups", tuple(self.groups))

        seen: Dict[str, str] = {}
        for item, item_type in [(f, "field") for f in self.fields] + [
            (g, "group") for g in self.groups
        ]:
            if item.id in seen:
                raise SchemaError(
                    f"duplicate id (already used by a {seen[item.id]})", item.id
                )
            seen[item.id] = item_type
            if item_type == "field":
                self._fields_by_id[item.id] = item
            else:
                self._groups_by_id[item.id] = item

        for setting_field in self.fields:
            condition = setting_field.enabled_when
            if condition and condition.controlling_field_id not in self._fields_by_id:
                raise SchemaError(
                    f"enabled_when references unknown field "
                    f"'{condition.controlling_field_id}'",
                    setting_field.id,
                )
            if (
                setting_field.group_id is not None
                and self.groups
                and setting_field.group_id not in self._groups_by_id
            ):
                raise SchemaError(
                    f"references undeclared group '{setting_field.group_id}'",
                    setting_field.id,
                )

        for group in self.groups:
            condition = group.collapsed_when
            if condition and condition.controlling_field_id not in self._fields_by_id:
                raise SchemaError(
                    f"collapsed_when references unknown field "
                    f"'{condition.controlling_field_id}'",
                    group.id,
                )

    # ─────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────

    def field(self, field_id: str) -> FieldSpec:
        """Get a field by id.

        Raises:
            KeyError: If no field has this id.
        """
        try:
            return self._fields_by_id[field_id]
        except KeyError:
            raise KeyError(f"Unknown field '{field_id}'") from None

    def group(self, group_id: str) -> GroupSpec:
        """Get a group by id.

        Raises:
            KeyError: If no group has this id.
        """
        try:
            return self._groups_by_id[group_id]
        except KeyError:
            raise KeyError(f"Unknown group '{group_id}'") from None

    def dependents_of(self, field_id: str) -> List[FieldSpec]:
        """Fields whose enablement is controlled directly by ``field_id``."""
        return [
            f
            for f in self.fields
            if f.enabled_when is not None
            and f.enabled_when.controlling_field_id == field_id
        ]

    def groups_controlled_by(self, field_id: str) -> List[GroupSpec]:
        """Groups whose expansion is controlled by ``field_id``."""
        return [
            g
            for g in self.groups
            if g.collapsed_when is not None
            and g.collapsed_when.controlling_field_id == field_id
        ]

    def layout(self) -> List[LayoutEntry]:
        """Return the top-level display order of fields and groups."""
        entries: List[LayoutEntry] = []
        grouped: Dict[str, List[FieldSpec]] = {}
        order: List[Any] = []

        for setting_field in self.fields:
            if setting_field.group_id is None:
                order.append(setting_field)
                continue
            if setting_field.group_id not in grouped:
                grouped[setting_field.group_id] = []
                order.append(setting_field.group_id)
            grouped[setting_field.group_id].append(setting_field)

        for item in order:
            if isinstance(item, FieldSpec):
                entries.append(LayoutEntry(group_id=None, group=None, fields=(item,)))
            else:
                entries.append(
                    LayoutEntry(
                        group_id=item,
                        group=self._groups_by_id.get(item),
                        fields=tuple(grouped[item]),
                    )
                )
        return entries


# ─────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────


def _pick(mapping: Mapping[str, Any], *names: str, default: Any = _MISSING) -> Any:
    """Return the value of the first present key among ``names``."""
    for name in names:
        if name in mapping:
            return mapping[name]
    return None if default is _MISSING else default


def _parse_condition(raw: Any, owner_id: str, attr: str) -> Optional[Condition]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise SchemaError(f"{attr} must be a mapping", owner_id)
    controlling = _pick(raw, "controlling_field_id", "controllingFieldId", "otherElementId")
    if not controlling:
        raise SchemaError(f"{attr} is missing the controlling field id", owner_id)
    if not any(k in raw for k in ("required_value", "requiredValue", "value")):
        raise SchemaError(f"{attr} is missing the required value", owner_id)
    required = _pick(raw, "required_value", "requiredValue", "value")
    return Condition(controlling_field_id=str(controlling), required_value=required)


def _parse_choices(raw: Any, owner_id: str) -> Tuple[Choice, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise SchemaError("choices must be a list", owner_id)
    choices = []
    for item in raw:
        if isinstance(item, Mapping):
            if "value" not in item:
                raise SchemaError("every choice needs a value", owner_id)
            text = _pick(item, "display_text", "displayText", "text", default="")
            choices.append(Choice(value=str(item["value"]), display_text=str(text)))
        else:
            choices.append(Choice(value=str(item)))
    return tuple(choices)


def _parse_field(raw: Any, index: int) -> FieldSpec:
    if not isinstance(raw, Mapping):
        raise SchemaError(f"field #{index} must be a mapping")

    field_id = raw.get("id")
    if not field_id or not isinstance(field_id, str):
        raise SchemaError(f"field #{index} is missing an id")

    kind_name = _pick(raw, "kind", "type")
    if kind_name is None:
        raise SchemaError("field is missing a kind", field_id)
    kind = FieldKind.from_name(kind_name)
    if kind is None:
        raise SchemaError(f"unknown field kind {kind_name!r}", field_id)

    return FieldSpec(
        id=field_id,
        kind=kind,
        default_value=_pick(raw, "default_value", "defaultValue", "default"),
        choices=_parse_choices(_pick(raw, "choices", "options"), field_id),
        validation_pattern=_pick(raw, "validation_pattern", "validationRegex", "validationPattern"),
        enabled_when=_parse_condition(
            _pick(raw, "enabled_when", "enabledWhen", "enabledIf"), field_id, "enabled_when"
        ),
        group_id=_pick(raw, "group_id", "groupId"),
        label=str(_pick(raw, "label", "labelText", default="") or ""),
        error_message=str(
            _pick(raw, "error_message", "errorMessage", default=DEFAULT_ERROR_MESSAGE)
            or DEFAULT_ERROR_MESSAGE
        ),
        description=str(_pick(raw, "description", default="") or ""),
    )


def _parse_group(raw: Any, index: int) -> GroupSpec:
    if not isinstance(raw, Mapping):
        raise SchemaError(f"group #{index} must be a mapping")

    group_id = raw.get("id")
    if not group_id or not isinstance(group_id, str):
        raise SchemaError(f"group #{index} is missing an id")

    expanded = _pick(raw, "default_expanded", "defaultExpanded", "expanded")
    return GroupSpec(
        id=group_id,
        display_name=str(_pick(raw, "display_name", "displayName", "name", default="") or ""),
        default_expanded=True if expanded is None else bool(expanded),
        collapsed_when=_parse_condition(
            _pick(raw, "collapsed_when", "collapsedWhen", "collapsedIf"),
            group_id,
            "collapsed_when",
        ),
    )


def parse_schema(configuration: Mapping[str, Any]) -> Schema:
    """Build a Schema from a configuration object.

    Args:
        configuration: Mapping with a ``fields`` (or ``settings``) list and an
            optional ``groups`` list.

    Returns:
        The parsed, fully checked Schema.

    Raises:
        SchemaError: If the configuration is malformed.
    """
    if not isinstance(configuration, Mapping):
        raise SchemaError("configuration must be a mapping")

    raw_fields = _pick(configuration, "fields", "settings")
    if raw_fields is None:
        raw_fields = []
    if not isinstance(raw_fields, (list, tuple)):
        raise SchemaError("fields must be a list")

    raw_groups = configuration.get("groups")
    if raw_groups is None:
        raw_groups = []
    if not isinstance(raw_groups, (list, tuple)):
        raise SchemaError("groups must be a list")

    schema = Schema(
        fields=tuple(_parse_field(raw, i) for i, raw in enumerate(raw_fields)),
        groups=tuple(_parse_group(raw, i) for i, raw in enumerate(raw_groups)),
        config_id=_pick(configuration, "config_id", "configId"),
        header_text=str(_pick(configuration, "header_text", "headerText", default="") or ""),
        footer_text=str(_pick(configuration, "footer_text", "footerText", default="") or ""),
        save_button_text=str(
            _pick(configuration, "save_button_text", "saveButtonText", default="Save") or "Save"
        ),
        cancel_button_text=str(
            _pick(configuration, "cancel_button_text", "cancelButtonText", default="Cancel")
            or "Cancel"
        ),
    )
    logger.debug(
        f"Parsed schema {schema.config_id!r}: "
        f"{len(schema.fields)} fields, {len(schema.groups)} groups"
    )
    return schema


def load_schema(path: Path) -> Schema:
    """Load and parse a schema from a YAML or JSON file.

    Args:
        path: Path to the schema file.

    Returns:
        The parsed Schema.

    Raises:
        SchemaError: If the file cannot be read or does not hold a valid schema.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise SchemaError(f"Failed to load schema from {path}: {e}", path=str(path)) from e
    return parse_schema(data)
