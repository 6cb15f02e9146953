"""TypedDicts for workflow spec serialization."""

from __future__ import annotations

from typing import Any, TypedDict


class StateSpecDict(TypedDict):
    """State entry in a workflow's ``states`` list."""

    name: str
    category: str
    description: str
    fields: list[str]


class _FieldSpecRequired(TypedDict):
    name: str
    type: str
    description: str
    allow_multiple: bool


class FieldSpecDict(_FieldSpecRequired, total=False):
    """Single field in a workflow's ``fields`` list.

    ``options`` and ``default`` are only present when the field defines them.
    """

    options: list[str]
    default: Any


class WorkflowSpecDict(TypedDict):
    """Serialized workflow, the same shape ``parse_workflow()`` accepts."""

    initial_state: str
    states: list[StateSpecDict]
    fields: list[FieldSpecDict]
