# src/ticketry/workflow.py
"""Workflow specifications -- states, custom field specs, parsing, and validation.

A project's workflow defines the states an issue may be in, the custom
fields issues carry, and which of those fields apply in each state. Field
specs also own the conversion between typed values and the string rows
they are persisted as.
"""

from __future__ import annotations

import json
import logging
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal

from ticketry.types.workflow import FieldSpecDict, StateSpecDict, WorkflowSpecDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

StateCategory = Literal["open", "wip", "done"]
FieldType = Literal["text", "choice", "number", "date", "boolean"]

_VALID_CATEGORIES: frozenset[str] = frozenset({"open", "wip", "done"})
_VALID_FIELD_TYPES: frozenset[str] = frozenset({"text", "choice", "number", "date", "boolean"})
_TRUE_STRINGS = frozenset({"true", "yes", "1", "on"})
_FALSE_STRINGS = frozenset({"false", "no", "0", "off"})
_MAX_NAME_LENGTH = 64
# Number values are stored as their own ordinal in a SQLite INTEGER column.
_MIN_NUMBER = -(2**63)
_MAX_NUMBER = 2**63 - 1


def check_name(kind: str, name: object) -> None:
    """Raise ValueError unless *name* is a usable state or field name.

    Names are shown to people ("In Progress", "Due Date"), so spaces and
    mixed case are fine; surrounding whitespace and control characters are not.
    """
    if not isinstance(name, str) or not name.strip():
        msg = f"Invalid {kind} name {name!r}: must be a non-empty string"
        raise ValueError(msg)
    if name != name.strip():
        msg = f"Invalid {kind} name {name!r}: must not have leading or trailing whitespace"
        raise ValueError(msg)
    if len(name) > _MAX_NAME_LENGTH:
        msg = f"Invalid {kind} name {name!r}: must be at most {_MAX_NAME_LENGTH} characters"
        raise ValueError(msg)
    for ch in name:
        if unicodedata.category(ch).startswith("C"):
            msg = f"Invalid {kind} name {name!r}: must not contain control characters (found U+{ord(ch):04X})"
            raise ValueError(msg)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StateNotFoundError(LookupError):
    """Raised when a state has no corresponding state spec in the workflow."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Unable to find state spec: {state}")


class UnknownFieldError(LookupError):
    """Raised when a field name has no field spec in the workflow."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown field '{name}': not defined by the project workflow")


class FieldValueError(ValueError):
    """Raised when a value cannot be converted for its field spec."""

    def __init__(self, field_name: str, value: Any, reason: str) -> None:
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid value {value!r} for field '{field_name}': {reason}")


# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateSpec:
    """A named workflow state and the custom fields applicable in it."""

    name: str
    category: StateCategory = "open"
    description: str = ""
    fields: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        check_name("state", self.name)
        if self.category not in _VALID_CATEGORIES:
            allowed = sorted(_VALID_CATEGORIES)
            msg = f"Invalid category '{self.category}' for state '{self.name}': must be one of {allowed}"
            raise ValueError(msg)

    def to_dict(self) -> StateSpecDict:
        return StateSpecDict(name=self.name, category=self.category, description=self.description, fields=list(self.fields))


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one custom field: its type, multiplicity, and options.

    Values are stored as lists of strings. ``convert_to_strings`` and
    ``convert_to_object`` translate between the typed value callers work
    with and that storage form; ``get_ordinal`` yields a sortable integer.
    """

    name: str
    type: FieldType
    description: str = ""
    allow_multiple: bool = False
    options: tuple[str, ...] = ()
    default: Any = None

    def __post_init__(self) -> None:
        check_name("field", self.name)
        if self.type not in _VALID_FIELD_TYPES:
            allowed = sorted(_VALID_FIELD_TYPES)
            msg = f"Invalid field type '{self.type}' for field '{self.name}': must be one of {allowed}"
            raise ValueError(msg)
        if self.type == "choice" and not self.options:
            msg = f"Choice field '{self.name}' must declare at least one option"
            raise ValueError(msg)
        if self.type != "choice" and self.options:
            msg = f"Field '{self.name}' of type '{self.type}' cannot declare options"
            raise ValueError(msg)
        if len(set(self.options)) != len(self.options):
            msg = f"Field '{self.name}' has duplicate options"
            raise ValueError(msg)

    # -- Conversion ---------------------------------------------------------

    def convert_to_strings(self, value: Any) -> list[str]:
        """Convert a typed value into its stored string form.

        ``None`` and empty values convert to an empty list. Multi-valued
        fields accept a list, tuple, or set; duplicates collapse to one string.

        Raises:
            FieldValueError: If the value does not fit this field's type.
        """
        if value is None:
            return []
        if isinstance(value, (list, tuple, set, frozenset)):
            if not self.allow_multiple and len(value) > 1:
                raise FieldValueError(self.name, value, "field does not allow multiple values")
            items = list(value)
        else:
            items = [value]

        strings: list[str] = []
        for item in items:
            converted = self._item_to_string(item)
            if converted is not None and converted not in strings:
                strings.append(converted)
        return strings

    def _item_to_string(self, item: Any) -> str | None:
        if item is None:
            return None
        if self.type in ("text", "choice"):
            if not isinstance(item, str):
                raise FieldValueError(self.name, item, "expected a string")
            if not item.strip():
                return None
            if self.type == "choice" and item not in self.options:
                raise FieldValueError(self.name, item, f"must be one of {list(self.options)}")
            return item
        if self.type == "number":
            if isinstance(item, bool):
                raise FieldValueError(self.name, item, "expected an integer")
            if isinstance(item, int):
                number = item
            elif isinstance(item, str):
                if not item.strip():
                    return None
                try:
                    number = int(item.strip())
                except ValueError:
                    raise FieldValueError(self.name, item, "expected an integer") from None
            else:
                raise FieldValueError(self.name, item, "expected an integer")
            if not (_MIN_NUMBER <= number <= _MAX_NUMBER):
                raise FieldValueError(self.name, item, "integer out of range")
            return str(number)
        if self.type == "date":
            if isinstance(item, datetime):
                return item.date().isoformat()
            if isinstance(item, date):
                return item.isoformat()
            if isinstance(item, str):
                if not item.strip():
                    return None
                try:
                    return date.fromisoformat(item.strip()).isoformat()
                except ValueError:
                    raise FieldValueError(self.name, item, "expected an ISO date (YYYY-MM-DD)") from None
            raise FieldValueError(self.name, item, "expected a date")
        # boolean
        if isinstance(item, bool):
            return "true" if item else "false"
        if isinstance(item, str):
            lowered = item.strip().lower()
            if lowered in _TRUE_STRINGS:
                return "true"
            if lowered in _FALSE_STRINGS:
                return "false"
        raise FieldValueError(self.name, item, "expected a boolean")

    def convert_to_object(self, strings: Sequence[str]) -> Any:
        """Convert stored strings back into a typed value.

        Returns a list for multi-valued fields, a single value otherwise,
        and ``None`` when there are no strings.

        Raises:
            FieldValueError: If a stored string no longer fits this spec
                (e.g. a choice option removed from the workflow).
        """
        if not strings:
            return None
        values = [self._string_to_item(s) for s in strings]
        if self.allow_multiple:
            return values
        return values[0]

    def _string_to_item(self, s: str) -> Any:
        if self.type == "text":
            return s
        if self.type == "choice":
            if s not in self.options:
                raise FieldValueError(self.name, s, f"stored value is not one of {list(self.options)}")
            return s
        if self.type == "number":
            try:
                return int(s)
            except ValueError:
                raise FieldValueError(self.name, s, "stored value is not an integer") from None
        if self.type == "date":
            try:
                return date.fromisoformat(s)
            except ValueError:
                raise FieldValueError(self.name, s, "stored value is not an ISO date") from None
        if s == "true":
            return True
        if s == "false":
            return False
        raise FieldValueError(self.name, s, "stored value is not a boolean")

    def get_ordinal(self, value: Any) -> int:
        """Sortable integer for a value: choice index, number, date ordinal, or -1."""
        try:
            strings = self.convert_to_strings(value)
        except FieldValueError:
            return -1
        if not strings:
            return -1
        first = strings[0]
        if self.type == "choice":
            return self.options.index(first)
        if self.type == "number":
            return int(first)
        if self.type == "boolean":
            return 1 if first == "true" else 0
        if self.type == "date":
            return date.fromisoformat(first).toordinal()
        return -1

    def to_dict(self) -> FieldSpecDict:
        result = FieldSpecDict(
            name=self.name,
            type=self.type,
            description=self.description,
            allow_multiple=self.allow_multiple,
        )
        if self.options:
            result["options"] = list(self.options)
        if self.default is not None:
            result["default"] = self.default
        return result


@dataclass(frozen=True)
class WorkflowSpec:
    """A project's complete workflow: ordered states and ordered field specs.

    Declaration order matters. ``get_field_specs()`` is the order effective
    fields are reported in, and the first state is the initial state unless
    ``initial_state`` names another one.
    """

    states: tuple[StateSpec, ...]
    field_specs: tuple[FieldSpec, ...] = ()
    initial_state: str = ""
    _states_by_name: dict[str, StateSpec] = field(init=False, repr=False, compare=False)
    _fields_by_name: dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.states:
            msg = "Workflow must define at least one state"
            raise ValueError(msg)
        if not self.initial_state:
            object.__setattr__(self, "initial_state", self.states[0].name)
        object.__setattr__(self, "_states_by_name", {s.name: s for s in self.states})
        object.__setattr__(self, "_fields_by_name", {f.name: f for f in self.field_specs})

    # -- Queries ------------------------------------------------------------

    def state_names(self) -> list[str]:
        return [s.name for s in self.states]

    def find_state_spec(self, state: str) -> StateSpec | None:
        return self._states_by_name.get(state)

    def get_state_spec(self, state: str) -> StateSpec:
        """Return the spec for *state*, raising StateNotFoundError if undefined."""
        spec = self._states_by_name.get(state)
        if spec is None:
            raise StateNotFoundError(state)
        return spec

    def get_category(self, state: str) -> StateCategory | None:
        spec = self._states_by_name.get(state)
        return spec.category if spec is not None else None

    def get_applicable_fields(self, state: str) -> frozenset[str]:
        """Field names applicable in *state*. Empty for an undefined state."""
        spec = self._states_by_name.get(state)
        if spec is None:
            logger.warning("No state spec for '%s' -- no fields are applicable", state)
            return frozenset()
        return frozenset(spec.fields)

    def get_field_specs(self) -> tuple[FieldSpec, ...]:
        return self.field_specs

    def get_field_spec(self, name: str) -> FieldSpec | None:
        return self._fields_by_name.get(name)

    # -- Validation ---------------------------------------------------------

    def validate(self) -> list[str]:
        """Check internal consistency. Returns error messages; empty means valid."""
        errors: list[str] = []

        seen_states: set[str] = set()
        for s in self.states:
            if s.name in seen_states:
                errors.append(f"duplicate state name '{s.name}'")
            seen_states.add(s.name)

        seen_fields: set[str] = set()
        for f in self.field_specs:
            if f.name in seen_fields:
                errors.append(f"duplicate field name '{f.name}'")
            seen_fields.add(f.name)

        if self.initial_state not in seen_states:
            errors.append(f"initial_state '{self.initial_state}' is not in states list")

        for s in self.states:
            for name in s.fields:
                if name not in seen_fields:
                    errors.append(f"state '{s.name}' references undefined field '{name}'")

        for f in self.field_specs:
            if f.default is None:
                continue
            try:
                f.convert_to_strings(f.default)
            except FieldValueError as exc:
                errors.append(f"field '{f.name}' has an invalid default: {exc}")

        return errors

    def to_dict(self) -> WorkflowSpecDict:
        return WorkflowSpecDict(
            initial_state=self.initial_state,
            states=[s.to_dict() for s in self.states],
            fields=[f.to_dict() for f in self.field_specs],
        )


# ---------------------------------------------------------------------------
# Parsing (from dict/JSON)
# ---------------------------------------------------------------------------

MAX_STATES = 50
MAX_FIELDS = 100


def parse_workflow(raw: Any) -> WorkflowSpec:
    """Parse and validate a workflow spec from a JSON-compatible dict.

    Raises:
        ValueError: If the shape is wrong, a limit is exceeded, or the
            resulting workflow is internally inconsistent.
    """
    if not isinstance(raw, dict):
        msg = f"Workflow must be a JSON object, got {type(raw).__name__}"
        raise ValueError(msg)

    raw_states = raw.get("states")
    if not isinstance(raw_states, list):
        msg = f"Workflow 'states' must be a list, got {type(raw_states).__name__}"
        raise ValueError(msg)
    for i, s in enumerate(raw_states):
        if not isinstance(s, dict) or "name" not in s:
            msg = f"Workflow state at index {i} must be an object with a 'name'"
            raise ValueError(msg)
        if not isinstance(s.get("fields", []), list):
            msg = f"Workflow state '{s['name']}': 'fields' must be a list"
            raise ValueError(msg)

    raw_fields = raw.get("fields", [])
    if raw_fields is None:
        raw_fields = []
    if not isinstance(raw_fields, list):
        msg = f"Workflow 'fields' must be a list, got {type(raw_fields).__name__}"
        raise ValueError(msg)
    for i, f in enumerate(raw_fields):
        if not isinstance(f, dict) or "name" not in f or "type" not in f:
            msg = f"Workflow field at index {i} must be an object with 'name' and 'type'"
            raise ValueError(msg)

    if len(raw_states) > MAX_STATES:
        msg = f"Workflow has {len(raw_states)} states (max {MAX_STATES})"
        raise ValueError(msg)
    if len(raw_fields) > MAX_FIELDS:
        msg = f"Workflow has {len(raw_fields)} fields (max {MAX_FIELDS})"
        raise ValueError(msg)

    states = tuple(
        StateSpec(
            name=s["name"],
            category=s.get("category", "open"),
            description=s.get("description", ""),
            fields=tuple(s.get("fields", [])),
        )
        for s in raw_states
    )
    field_specs = tuple(
        FieldSpec(
            name=f["name"],
            type=f["type"],
            description=f.get("description", ""),
            allow_multiple=bool(f.get("allow_multiple", False)),
            options=tuple(f.get("options", [])),
            default=f.get("default"),
        )
        for f in raw_fields
    )
    spec = WorkflowSpec(states=states, field_specs=field_specs, initial_state=raw.get("initial_state", ""))

    errors = spec.validate()
    if errors:
        msg = "Invalid workflow: " + "; ".join(errors)
        raise ValueError(msg)
    logger.debug("Parsed workflow: %d states, %d fields", len(states), len(field_specs))
    return spec


def load_workflow_file(path: Path) -> WorkflowSpec:
    """Read and parse a workflow JSON file."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"{path.name} is not valid JSON: {exc}"
        raise ValueError(msg) from exc
    return parse_workflow(raw)


def default_workflow() -> WorkflowSpec:
    """The built-in workflow used for projects without a workflow.json."""
    from ticketry.workflow_data import DEFAULT_WORKFLOW

    return parse_workflow(DEFAULT_WORKFLOW)
