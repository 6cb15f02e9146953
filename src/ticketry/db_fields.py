"""FieldsMixin -- loading, resolving, and replacing custom field values.

The resolution rules live in ``ticketry.fields``; this mixin loads raw rows
from ``issue_fields``, hands them to the resolver, and persists replacements.
All methods access ``self.conn``, ``self.get_issue()``, etc. via Python's
MRO when composed into ``TicketDB``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from ticketry.db_base import DBMixinProtocol
from ticketry.fields import (
    EffectiveField,
    FieldRow,
    FieldShape,
    excluded_fields,
    field_bean,
    field_ordinal,
    field_value,
    replace_field_rows,
)

if TYPE_CHECKING:
    from ticketry.core import Issue

logger = logging.getLogger(__name__)


class FieldsMixin(DBMixinProtocol):
    """Custom field storage and resolution for TicketDB.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TicketDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From IssuesMixin
        def _touch_issue(
            self,
            issue_id: int,
            description: str,
            *,
            actor: str = "",
            expected_version: int | None = None,
            extra_updates: Mapping[str, Any] | None = None,
        ) -> None: ...

        # From ActivityMixin
        def _record_change(
            self,
            issue_id: int,
            change_type: str,
            *,
            actor: str = "",
            old_value: str | None = None,
            new_value: str | None = None,
        ) -> None: ...

    # -- Raw rows ------------------------------------------------------------

    def get_field_rows(self, issue_id: int) -> list[FieldRow]:
        """All stored rows of an issue, in insertion order, placeholders included."""
        rows = self.conn.execute(
            "SELECT name, value, type, ordinal FROM issue_fields WHERE issue_id = ? ORDER BY id",
            (issue_id,),
        ).fetchall()
        return [FieldRow(name=r["name"], value=r["value"], type=r["type"], ordinal=r["ordinal"]) for r in rows]

    def _write_field_rows(self, issue_id: int, rows: list[FieldRow], names: set[str]) -> None:
        """Replace the stored rows of *names* with the matching entries of *rows*. Caller commits."""
        for name in sorted(names):
            self.conn.execute("DELETE FROM issue_fields WHERE issue_id = ? AND name = ?", (issue_id, name))
        self.conn.executemany(
            "INSERT INTO issue_fields (issue_id, name, value, type, ordinal) VALUES (?, ?, ?, ?, ?)",
            [(issue_id, r.name, r.value, r.type, r.ordinal) for r in rows if r.name in names],
        )

    # -- Reads ---------------------------------------------------------------

    def get_effective_fields(self, issue_id: int) -> dict[str, EffectiveField]:
        issue = self.get_issue(issue_id)
        return issue.fields

    def get_field_value(self, issue_id: int, name: str) -> Any:
        """Typed value of an effective field; None when absent, empty, or unconvertible."""
        issue = self.get_issue(issue_id)
        return field_value(self.get_workflow(issue.project_id), issue.fields, name)

    def get_field_ordinal(self, issue_id: int, name: str, value: Any) -> int:
        issue = self.get_issue(issue_id)
        return field_ordinal(self.get_workflow(issue.project_id), name, value)

    # -- Writes --------------------------------------------------------------

    def set_field_value(
        self,
        issue_id: int,
        name: str,
        value: Any,
        *,
        expected_version: int | None = None,
        actor: str = "",
    ) -> Issue:
        """Replace every stored value of field *name*.

        ``None`` or an empty value stores a single placeholder row.

        Raises:
            UnknownFieldError: If the workflow has no spec for *name*.
            FieldValueError: If *value* does not convert for the spec.
            StaleIssueError: If *expected_version* is stale.
        """
        return self.set_fields(issue_id, {name: value}, expected_version=expected_version, actor=actor)

    def set_fields(
        self,
        issue_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
        actor: str = "",
    ) -> Issue:
        """Set several fields in one write. Nothing is stored if any value is rejected."""
        issue = self.get_issue(issue_id)
        if not values:
            return issue
        workflow = self.get_workflow(issue.project_id)
        old_rows = self.get_field_rows(issue_id)
        rows = old_rows
        for name, value in values.items():
            rows = replace_field_rows(rows, name, value, workflow.get_field_spec(name))

        try:
            self._touch_issue(
                issue_id,
                "changed " + ", ".join(values),
                actor=actor,
                expected_version=expected_version,
            )
            self._write_field_rows(issue_id, rows, set(values))
            for name in values:
                self._record_change(
                    issue_id,
                    "field_changed",
                    actor=actor,
                    old_value=_render(name, old_rows),
                    new_value=_render(name, rows),
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_issue(issue_id)

    def clear_field(self, issue_id: int, name: str, *, actor: str = "") -> bool:
        """Delete every stored row of *name*, whether or not the workflow still defines it.

        Returns False when there was nothing to delete.
        """
        self.get_issue(issue_id)  # raises KeyError if not found
        rows = self.get_field_rows(issue_id)
        if not any(r.name == name for r in rows):
            return False
        remaining = replace_field_rows(rows, name, None, None, on_unknown="drop")
        try:
            self._touch_issue(issue_id, f"cleared {name}", actor=actor)
            self._write_field_rows(issue_id, remaining, {name})
            self._record_change(issue_id, "field_cleared", actor=actor, old_value=_render(name, rows))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Cleared field %s on issue %d", name, issue_id)
        return True

    # -- Shapes --------------------------------------------------------------

    def get_excluded_fields(self, issue_id: int, shape: FieldShape, state: str) -> set[str]:
        """Slots of *shape* to hide when rendering the issue for *state*.

        Raises:
            StateNotFoundError: If *state* is not defined by the workflow.
            UnknownFieldError: If a slot names a field the workflow does not define.
        """
        issue = self.get_issue(issue_id)
        return excluded_fields(self.get_workflow(issue.project_id), shape, state, issue.fields)

    def get_field_bean(self, issue_id: int, shape: FieldShape) -> Any:
        issue = self.get_issue(issue_id)
        return field_bean(self.get_workflow(issue.project_id), issue.fields, shape)

    def set_field_bean(
        self,
        issue_id: int,
        shape: FieldShape,
        bean: Any,
        field_names: Iterable[str],
        *,
        actor: str = "",
    ) -> Issue:
        """Write the slots of *bean* named by *field_names* back to the issue."""
        wanted = set(field_names)
        for name in wanted:
            shape.slot_for(name)  # raises UnmappedFieldError
        read = shape.read(bean)
        return self.set_fields(issue_id, {n: v for n, v in read.items() if n in wanted}, actor=actor)


def _render(name: str, rows: Iterable[FieldRow]) -> str | None:
    values = sorted(r.value for r in rows if r.name == name and r.value is not None)
    return ", ".join(values) if values else None
