"""Field resolution -- effective values, value replacement, and shape projection.

Pure functions over rows that are already in memory and a WorkflowSpec.
Loading and saving rows is the DB layer's job (db_fields.py); nothing in
this module touches SQLite.

Raw rows are what gets persisted: one ``FieldRow`` per (field, value),
with a single null-valued placeholder row when a field is set to nothing.
Effective fields are derived on demand and never stored.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from ticketry.types.core import EffectiveFieldDict, FieldRowDict
from ticketry.workflow import FieldSpec, FieldValueError, UnknownFieldError, WorkflowSpec

logger = logging.getLogger(__name__)


class UnmappedFieldError(LookupError):
    """Raised when a shape has no slot for a workflow field."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' has no slot in the target shape")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldRow:
    """One stored value of a custom field. ``value`` is None for a placeholder."""

    name: str
    value: str | None
    type: str
    ordinal: int = -1

    def to_dict(self) -> FieldRowDict:
        return FieldRowDict(name=self.name, value=self.value, type=self.type, ordinal=self.ordinal)


@dataclass
class EffectiveField:
    name: str
    type: str
    values: list[str] = field(default_factory=list)

    def to_dict(self) -> EffectiveFieldDict:
        return EffectiveFieldDict(name=self.name, type=self.type, values=list(self.values))


# ---------------------------------------------------------------------------
# Effective fields
# ---------------------------------------------------------------------------


def resolve_effective_fields(
    applicable: Iterable[str],
    field_specs: Iterable[FieldSpec],
    rows: Iterable[FieldRow],
) -> dict[str, EffectiveField]:
    """Compute effective fields from raw rows.

    Rows for fields outside *applicable* are dropped silently. The result
    follows *field_specs* order; each field's values are non-null, unique,
    and sorted, cut to the first one when the spec disallows multiples.
    The type tag comes from the first stored row of the field.
    """
    applicable_set = frozenset(applicable)
    rows_by_name: dict[str, list[FieldRow]] = {}
    for row in rows:
        if row.name in applicable_set:
            rows_by_name.setdefault(row.name, []).append(row)

    effective: dict[str, EffectiveField] = {}
    for spec in field_specs:
        matching = rows_by_name.get(spec.name)
        if not matching:
            continue
        values = sorted({r.value for r in matching if r.value is not None})
        if not spec.allow_multiple and len(values) > 1:
            values = values[:1]
        effective[spec.name] = EffectiveField(name=spec.name, type=matching[0].type, values=values)
    return effective


def effective_fields(workflow: WorkflowSpec, state: str, rows: Iterable[FieldRow]) -> dict[str, EffectiveField]:
    """Effective fields of an issue in *state* under *workflow*."""
    return resolve_effective_fields(workflow.get_applicable_fields(state), workflow.get_field_specs(), rows)


def field_value(workflow: WorkflowSpec, effective: Mapping[str, EffectiveField], name: str) -> Any:
    """Typed value of one effective field, or None.

    Stored strings that no longer convert (say, a choice option dropped
    from the workflow) are logged and read as None so that one bad field
    never hides the others.
    """
    eff = effective.get(name)
    if eff is None or not eff.values:
        return None
    spec = workflow.get_field_spec(name)
    if spec is None:
        logger.warning("Effective field '%s' has no field spec", name)
        return None
    try:
        return spec.convert_to_object(sorted(eff.values))
    except FieldValueError:
        logger.error("Error converting stored value for field: %s", name, exc_info=True)
        return None


def field_ordinal(workflow: WorkflowSpec, name: str, value: Any) -> int:
    """Sortable ordinal of *value* for field *name*; -1 without a field spec."""
    spec = workflow.get_field_spec(name)
    if spec is None:
        return -1
    return spec.get_ordinal(value)


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------


def replace_field_rows(
    rows: Iterable[FieldRow],
    name: str,
    value: Any,
    spec: FieldSpec | None,
    *,
    on_unknown: Literal["error", "drop"] = "error",
) -> list[FieldRow]:
    """Return *rows* with every row of field *name* replaced by rows for *value*.

    A value converting to no strings (including None) is stored as one
    null-valued placeholder row. Conversion happens before anything is
    removed, so a FieldValueError leaves the input untouched.

    Without a spec, ``on_unknown="error"`` raises UnknownFieldError and
    ``on_unknown="drop"`` removes the field's rows and adds nothing.
    """
    if spec is None:
        if on_unknown == "error":
            raise UnknownFieldError(name)
        logger.info("Dropping stored rows of field without spec: %s", name)
        return [r for r in rows if r.name != name]

    strings = spec.convert_to_strings(value)
    ordinal = spec.get_ordinal(value)
    replaced = [r for r in rows if r.name != name]
    if strings:
        replaced.extend(FieldRow(name=name, value=s, type=spec.type, ordinal=ordinal) for s in strings)
    else:
        replaced.append(FieldRow(name=name, value=None, type=spec.type, ordinal=ordinal))
    return replaced


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------


def _slot_name(field_name: str) -> str:
    """``"Due Date"`` -> ``"due_date"``."""
    return re.sub(r"\W+", "_", field_name.strip().lower()).strip("_")


def _display_name(attr: str) -> str:
    """``"due_date"`` -> ``"Due Date"``."""
    return attr.replace("_", " ").strip().title()


@dataclass(frozen=True)
class FieldSlot:
    field_name: str
    attr: str


@dataclass(frozen=True)
class FieldShape:
    """Explicit descriptor of a structure that holds custom field values.

    Each slot maps a workflow field name to an attribute (or dict key) of
    the target. ``factory`` is called with every slot attribute as a
    keyword argument to build a populated instance.
    """

    slots: tuple[FieldSlot, ...]
    factory: Callable[..., Any] = dict

    def __post_init__(self) -> None:
        names = [s.field_name for s in self.slots]
        if len(set(names)) != len(names):
            msg = "FieldShape has duplicate field names"
            raise ValueError(msg)
        attrs = [s.attr for s in self.slots]
        if len(set(attrs)) != len(attrs):
            msg = "FieldShape has duplicate slot attributes"
            raise ValueError(msg)

    @classmethod
    def from_names(cls, field_names: Iterable[str]) -> FieldShape:
        """Dict-backed shape with snake_case keys derived from the field names."""
        return cls(slots=tuple(FieldSlot(field_name=n, attr=_slot_name(n)) for n in field_names))

    @classmethod
    def from_dataclass(cls, dc: type[Any]) -> FieldShape:
        """Shape backed by a dataclass.

        The field name for each attribute is ``metadata["field"]`` when
        present, otherwise the attribute name title-cased.
        """
        if not dataclasses.is_dataclass(dc):
            msg = f"{dc!r} is not a dataclass"
            raise TypeError(msg)
        slots = tuple(
            FieldSlot(field_name=f.metadata.get("field", _display_name(f.name)), attr=f.name)
            for f in dataclasses.fields(dc)
            if f.init
        )
        return cls(slots=slots, factory=dc)

    def field_names(self) -> list[str]:
        return [s.field_name for s in self.slots]

    def slot_for(self, field_name: str) -> str:
        for s in self.slots:
            if s.field_name == field_name:
                return s.attr
        raise UnmappedFieldError(field_name)

    def build(self, values: Mapping[str, Any]) -> Any:
        """Build an instance; slots without a value in *values* get None."""
        kwargs: dict[str, Any] = {s.attr: None for s in self.slots}
        for name, value in values.items():
            kwargs[self.slot_for(name)] = value
        return self.factory(**kwargs)

    def read(self, bean: Any) -> dict[str, Any]:
        """Extract ``{field_name: value}`` from a dict or attribute-bearing instance."""
        if isinstance(bean, Mapping):
            return {s.field_name: bean.get(s.attr) for s in self.slots}
        return {s.field_name: getattr(bean, s.attr) for s in self.slots}


def field_bean(workflow: WorkflowSpec, effective: Mapping[str, EffectiveField], shape: FieldShape) -> Any:
    """Populate *shape* with the typed value of every effective field."""
    return shape.build({name: field_value(workflow, effective, name) for name in effective})


def excluded_fields(
    workflow: WorkflowSpec,
    shape: FieldShape,
    state: str,
    effective: Mapping[str, EffectiveField],
) -> set[str]:
    """Slot attributes of *shape* to leave out when rendering for *state*.

    Only the slots of *shape* are considered, so a form may cover a subset
    of the workflow fields. A slot is excluded when its field is not
    applicable in *state* or has no effective value.

    Raises:
        StateNotFoundError: If *state* has no state spec.
        UnknownFieldError: If a slot names a field the workflow does not define.
    """
    state_spec = workflow.get_state_spec(state)
    applicable = set(state_spec.fields)
    excluded: set[str] = set()
    for slot in shape.slots:
        if workflow.get_field_spec(slot.field_name) is None:
            raise UnknownFieldError(slot.field_name)
        eff = effective.get(slot.field_name)
        if slot.field_name not in applicable or eff is None or not eff.values:
            excluded.add(slot.attr)
    return excluded
