"""IssuesMixin -- issue CRUD, state changes, lookup, and listing.

All methods access ``self.conn``, ``self.get_workflow()``, etc. via
Python's MRO when composed into ``TicketDB``.

Every mutation goes through ``_touch_issue``, which bumps ``version`` with
a compare-and-set so that concurrent writers to one issue cannot silently
overwrite each other.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, cast

from ticketry.db_base import DBMixinProtocol, StaleIssueError, _now_iso
from ticketry.fields import FieldRow, effective_fields, replace_field_rows
from ticketry.validation import validate_title

if TYPE_CHECKING:
    from ticketry.core import Issue
    from ticketry.workflow import WorkflowSpec

logger = logging.getLogger(__name__)

# Built-in field display name -> SQL sort expression.
_BUILTIN_SORT_COLUMNS: dict[str, str] = {
    "Number": "i.number",
    "State": "i.state",
    "Title": "i.title",
    "Description": "i.description",
    "Submitter": "i.submitter",
    "Submit Date": "i.submit_date",
    "Update Date": "i.last_act_date",
    "Votes": "i.num_votes",
    "Comments": "i.num_comments",
    "Milestone": "m.name",
}

_MAX_LIST_LIMIT = 1000


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class IssuesMixin(DBMixinProtocol):
    """Issue CRUD, state changes, lookup, and listing.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TicketDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From ProjectsMixin
        def _resolve_project_id(self, project: int | str) -> int: ...

        # From FieldsMixin
        def get_field_rows(self, issue_id: int) -> list[FieldRow]: ...
        def _write_field_rows(self, issue_id: int, rows: list[FieldRow], names: set[str]) -> None: ...

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

    # -- Helpers -------------------------------------------------------------

    def _resolve_milestone_id(self, project_id: int, milestone: str | None) -> int | None:
        if milestone is None or milestone == "":
            return None
        row = self.conn.execute(
            "SELECT id FROM milestones WHERE project_id = ? AND name = ?",
            (project_id, milestone),
        ).fetchone()
        if row is None:
            msg = f"Milestone not found: {milestone}"
            raise KeyError(msg)
        result: int = row["id"]
        return result

    def _next_number(self, project_id: int) -> int:
        row = self.conn.execute("SELECT next_number FROM projects WHERE id = ?", (project_id,)).fetchone()
        number: int = row["next_number"]
        self.conn.execute("UPDATE projects SET next_number = ? WHERE id = ?", (number + 1, project_id))
        return number

    def _touch_issue(
        self,
        issue_id: int,
        description: str,
        *,
        actor: str = "",
        expected_version: int | None = None,
        extra_updates: Mapping[str, Any] | None = None,
    ) -> None:
        """Record last activity and bump the version. Caller commits.

        Raises:
            StaleIssueError: If *expected_version* no longer matches.
        """
        sets = ["last_act_date = ?", "last_act_description = ?", "last_act_user = ?", "version = version + 1"]
        params: list[Any] = [_now_iso(), description, actor or None]
        for column, value in (extra_updates or {}).items():
            sets.append(f"{column} = ?")
            params.append(value)
        sql = f"UPDATE issues SET {', '.join(sets)} WHERE id = ?"
        params.append(issue_id)
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)
        cursor = self.conn.execute(sql, params)
        if cursor.rowcount == 0:
            raise StaleIssueError(issue_id, expected_version)

    # -- Issue CRUD ----------------------------------------------------------

    def create_issue(
        self,
        project: int | str,
        title: str,
        *,
        description: str = "",
        submitter: str | None = None,
        milestone: str | None = None,
        state: str | None = None,
        fields: Mapping[str, Any] | None = None,
        actor: str = "",
    ) -> Issue:
        """Create an issue with the project's next number.

        The state defaults to the workflow's initial state. Field defaults
        declared by the workflow are applied to applicable fields the caller
        did not set. All validation happens before anything is written.
        """
        title = validate_title(title)
        project_id = self._resolve_project_id(project)
        workflow = self.get_workflow(project_id)
        state = state or workflow.initial_state
        state_spec = workflow.get_state_spec(state)
        milestone_id = self._resolve_milestone_id(project_id, milestone)
        fields = dict(fields or {})

        rows: list[FieldRow] = []
        for spec in workflow.get_field_specs():
            if spec.default is not None and spec.name in state_spec.fields and spec.name not in fields:
                rows = replace_field_rows(rows, spec.name, spec.default, spec)
        for name, value in fields.items():
            rows = replace_field_rows(rows, name, value, workflow.get_field_spec(name))

        now = _now_iso()
        try:
            number = self._next_number(project_id)
            cursor = self.conn.execute(
                "INSERT INTO issues (project_id, number, number_str, uuid, state, title, no_space_title, "
                "description, milestone_id, submitter, submit_date, last_act_date, last_act_description, last_act_user) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    project_id,
                    number,
                    str(number),
                    str(uuid.uuid4()),
                    state,
                    title,
                    "".join(title.split()),
                    description,
                    milestone_id,
                    submitter,
                    now,
                    now,
                    "submitted",
                    submitter or actor or None,
                ),
            )
            issue_id = cast(int, cursor.lastrowid)
            self._write_field_rows(issue_id, rows, {r.name for r in rows})
            self._record_change(issue_id, "created", actor=actor, new_value=title)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info("Created issue #%d in project %d (id=%d)", number, project_id, issue_id)
        return self.get_issue(issue_id)

    def get_issue(self, issue_id: int) -> Issue:
        row = self.conn.execute(
            "SELECT i.*, m.name AS milestone_name, p.name AS project_name FROM issues i "
            "JOIN projects p ON p.id = i.project_id "
            "LEFT JOIN milestones m ON m.id = i.milestone_id WHERE i.id = ?",
            (issue_id,),
        ).fetchone()
        if row is None:
            msg = f"Issue not found: {issue_id}"
            raise KeyError(msg)
        return self._build_issue(row)

    def get_issue_by_number(self, project: int | str, number: int) -> Issue:
        project_id = self._resolve_project_id(project)
        row = self.conn.execute(
            "SELECT id FROM issues WHERE project_id = ? AND number = ?",
            (project_id, number),
        ).fetchone()
        if row is None:
            msg = f"Issue not found: #{number}"
            raise KeyError(msg)
        return self.get_issue(row["id"])

    def _build_issue(self, row: sqlite3.Row) -> Issue:
        """Build an Issue with effective fields resolved against its project's workflow."""
        from ticketry.core import Issue, LastActivity

        workflow = self.get_workflow(row["project_id"])
        return Issue(
            id=row["id"],
            project_id=row["project_id"],
            number=row["number"],
            title=row["title"],
            state=row["state"],
            project_name=row["project_name"],
            uuid=row["uuid"],
            description=row["description"] or "",
            milestone=row["milestone_name"],
            submitter=row["submitter"],
            submit_date=row["submit_date"],
            num_votes=row["num_votes"],
            num_comments=row["num_comments"],
            last_activity=LastActivity(
                date=row["last_act_date"],
                description=row["last_act_description"],
                user=row["last_act_user"],
            ),
            version=row["version"],
            state_category=workflow.get_category(row["state"]) or "open",
            fields=effective_fields(workflow, row["state"], self.get_field_rows(row["id"])),
        )

    def find_issues_by_title(self, project: int | str, text: str, *, limit: int = 20) -> list[Issue]:
        """Whitespace-insensitive substring match on titles, newest first."""
        project_id = self._resolve_project_id(project)
        needle = _escape_like("".join(text.split()))
        rows = self.conn.execute(
            "SELECT id FROM issues WHERE project_id = ? AND no_space_title LIKE ? ESCAPE '\\' ORDER BY number DESC LIMIT ?",
            (project_id, f"%{needle}%", limit),
        ).fetchall()
        return [self.get_issue(r["id"]) for r in rows]

    def list_issues(
        self,
        project: int | str,
        *,
        state: str | None = None,
        milestone: str | None = None,
        order_by: str = "Number",
        descending: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Issue]:
        """List issues of a project.

        ``order_by`` is a built-in field display name (see ``BUILTIN_FIELDS``)
        or a custom field name; custom fields sort by their stored ordinal,
        with issues that have no value for it (cleared included) last.

        Raises:
            ValueError: If ``order_by`` names neither kind of field, or the
                paging arguments are out of range.
        """
        if not (1 <= limit <= _MAX_LIST_LIMIT):
            msg = f"limit must be between 1 and {_MAX_LIST_LIMIT}, got {limit}"
            raise ValueError(msg)
        if offset < 0:
            msg = f"offset must be >= 0, got {offset}"
            raise ValueError(msg)
        project_id = self._resolve_project_id(project)
        workflow = self.get_workflow(project_id)
        direction = "DESC" if descending else "ASC"

        joins = "LEFT JOIN milestones m ON m.id = i.milestone_id"
        params: list[Any] = []
        if order_by in _BUILTIN_SORT_COLUMNS:
            order_sql = f"{_BUILTIN_SORT_COLUMNS[order_by]} {direction}, i.number ASC"
        elif workflow.get_field_spec(order_by) is not None:
            joins += (
                " LEFT JOIN (SELECT issue_id, MIN(ordinal) AS ord FROM issue_fields"
                " WHERE name = ? AND value IS NOT NULL GROUP BY issue_id) f"
                " ON f.issue_id = i.id"
            )
            params.append(order_by)
            order_sql = f"f.ord IS NULL, f.ord {direction}, i.number ASC"
        else:
            msg = f"Unknown sort field '{order_by}'"
            raise ValueError(msg)

        where = ["i.project_id = ?"]
        params.append(project_id)
        if state is not None:
            workflow.get_state_spec(state)
            where.append("i.state = ?")
            params.append(state)
        if milestone is not None:
            where.append("i.milestone_id = ?")
            params.append(self._resolve_milestone_id(project_id, milestone))

        rows = self.conn.execute(
            f"SELECT i.id FROM issues i {joins} WHERE {' AND '.join(where)} ORDER BY {order_sql} LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [self.get_issue(r["id"]) for r in rows]

    def update_issue(
        self,
        issue_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        milestone: str | None = None,
        expected_version: int | None = None,
        actor: str = "",
    ) -> Issue:
        """Update built-in attributes. ``milestone=""`` clears the milestone."""
        current = self.get_issue(issue_id)
        updates: dict[str, Any] = {}
        changed: list[tuple[str, str | None, str | None]] = []

        if title is not None:
            title = validate_title(title)
            if title != current.title:
                updates["title"] = title
                updates["no_space_title"] = "".join(title.split())
                changed.append(("title_changed", current.title, title))
        if description is not None and description != current.description:
            updates["description"] = description
            changed.append(("description_changed", current.description, description))
        if milestone is not None and (milestone or None) != current.milestone:
            updates["milestone_id"] = self._resolve_milestone_id(current.project_id, milestone)
            changed.append(("milestone_changed", current.milestone, milestone or None))

        if not changed:
            return current

        try:
            self._touch_issue(
                issue_id,
                ", ".join(c[0].replace("_", " ") for c in changed),
                actor=actor,
                expected_version=expected_version,
                extra_updates=updates,
            )
            for change_type, old, new in changed:
                self._record_change(issue_id, change_type, actor=actor, old_value=old, new_value=new)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_issue(issue_id)

    def change_state(
        self,
        issue_id: int,
        state: str,
        *,
        fields: Mapping[str, Any] | None = None,
        expected_version: int | None = None,
        actor: str = "",
    ) -> Issue:
        """Move an issue to *state*, optionally setting field values in the same write.

        Raises:
            StateNotFoundError: If *state* is not defined by the workflow.
            UnknownFieldError, FieldValueError: For bad field values.
        """
        current = self.get_issue(issue_id)
        workflow: WorkflowSpec = self.get_workflow(current.project_id)
        workflow.get_state_spec(state)

        rows = self.get_field_rows(issue_id)
        names: set[str] = set()
        for name, value in (fields or {}).items():
            rows = replace_field_rows(rows, name, value, workflow.get_field_spec(name))
            names.add(name)

        if state == current.state and not names:
            return current

        try:
            self._touch_issue(
                issue_id,
                f"changed state to {state}" if state != current.state else "changed fields",
                actor=actor,
                expected_version=expected_version,
                extra_updates={"state": state},
            )
            if names:
                self._write_field_rows(issue_id, rows, names)
            if state != current.state:
                self._record_change(issue_id, "state_changed", actor=actor, old_value=current.state, new_value=state)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: int) -> None:
        """Delete an issue together with its fields, comments, changes, votes, and watches."""
        self.get_issue(issue_id)  # raises KeyError if not found
        try:
            self.conn.execute("DELETE FROM issues WHERE id = ?", (issue_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Deleted issue %d", issue_id)
