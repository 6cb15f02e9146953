"""ProjectsMixin -- projects, their workflow specs, and milestones.

All methods access ``self.conn`` etc. via Python's MRO when composed into
``TicketDB``. Workflows are stored as JSON on the project row and cached
per connection once parsed.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import cast

from ticketry.db_base import DBMixinProtocol, _now_iso
from ticketry.types.core import MilestoneDict, ProjectDict
from ticketry.workflow import WorkflowSpec, check_name, default_workflow, load_workflow_file, parse_workflow

logger = logging.getLogger(__name__)


class ProjectsMixin(DBMixinProtocol):
    """Project, workflow, and milestone operations for TicketDB."""

    # -- Projects ------------------------------------------------------------

    def create_project(self, name: str, *, workflow: WorkflowSpec | None = None) -> ProjectDict:
        check_name("project", name)
        spec = workflow or default_workflow()
        errors = spec.validate()
        if errors:
            msg = "Invalid workflow: " + "; ".join(errors)
            raise ValueError(msg)
        if self.conn.execute("SELECT 1 FROM projects WHERE name = ?", (name,)).fetchone() is not None:
            msg = f"Project '{name}' already exists"
            raise ValueError(msg)
        try:
            cursor = self.conn.execute(
                "INSERT INTO projects (name, workflow, created_at) VALUES (?, ?, ?)",
                (name, json.dumps(spec.to_dict()), _now_iso()),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        project_id = cast(int, cursor.lastrowid)
        self._workflow_cache[project_id] = spec
        logger.info("Created project %s (id=%d, %d states)", name, project_id, len(spec.states))
        return self.get_project(project_id)

    def ensure_project(self, name: str, *, workflow_file: Path | None = None) -> ProjectDict:
        """Return project *name*, creating it first if needed.

        A new project takes its workflow from *workflow_file* when that file
        exists, otherwise the built-in default.
        """
        row = self.conn.execute("SELECT id FROM projects WHERE name = ?", (name,)).fetchone()
        if row is not None:
            return self.get_project(row["id"])
        workflow = None
        if workflow_file is not None and workflow_file.is_file():
            workflow = load_workflow_file(workflow_file)
            logger.info("Seeding project %s with workflow from %s", name, workflow_file)
        return self.create_project(name, workflow=workflow)

    def _resolve_project_id(self, project: int | str) -> int:
        """Accept a project id or name; raise KeyError if there is no such project."""
        if isinstance(project, int):
            row = self.conn.execute("SELECT id FROM projects WHERE id = ?", (project,)).fetchone()
        else:
            row = self.conn.execute("SELECT id FROM projects WHERE name = ?", (project,)).fetchone()
        if row is None:
            msg = f"Project not found: {project}"
            raise KeyError(msg)
        result: int = row["id"]
        return result

    def get_project(self, project: int | str) -> ProjectDict:
        project_id = self._resolve_project_id(project)
        row = self.conn.execute("SELECT id, name, created_at FROM projects WHERE id = ?", (project_id,)).fetchone()
        return ProjectDict(id=row["id"], name=row["name"], created_at=row["created_at"])

    def list_projects(self) -> list[ProjectDict]:
        rows = self.conn.execute("SELECT id, name, created_at FROM projects ORDER BY name").fetchall()
        return [ProjectDict(id=r["id"], name=r["name"], created_at=r["created_at"]) for r in rows]

    # -- Workflow ------------------------------------------------------------

    def get_workflow(self, project: int | str) -> WorkflowSpec:
        project_id = self._resolve_project_id(project)
        cached = self._workflow_cache.get(project_id)
        if cached is not None:
            return cached
        row = self.conn.execute("SELECT workflow FROM projects WHERE id = ?", (project_id,)).fetchone()
        spec = parse_workflow(json.loads(row["workflow"]))
        self._workflow_cache[project_id] = spec
        return spec

    def set_workflow(self, project: int | str, workflow: WorkflowSpec, *, purge_removed_fields: bool = False) -> None:
        """Replace a project's workflow.

        Every existing issue must still be in a state the new workflow
        defines. With *purge_removed_fields*, stored values of fields the
        new workflow no longer declares are deleted.

        Raises:
            ValueError: If the workflow is invalid or would orphan issue states.
        """
        project_id = self._resolve_project_id(project)
        errors = workflow.validate()
        if errors:
            msg = "Invalid workflow: " + "; ".join(errors)
            raise ValueError(msg)

        used_states = {
            r["state"] for r in self.conn.execute("SELECT DISTINCT state FROM issues WHERE project_id = ?", (project_id,)).fetchall()
        }
        orphaned = sorted(used_states - set(workflow.state_names()))
        if orphaned:
            msg = f"Workflow is missing states still used by issues: {', '.join(orphaned)}"
            raise ValueError(msg)

        try:
            self.conn.execute("UPDATE projects SET workflow = ? WHERE id = ?", (json.dumps(workflow.to_dict()), project_id))
            if purge_removed_fields:
                names = [f.name for f in workflow.get_field_specs()]
                placeholders = ",".join("?" * len(names))
                name_filter = f"AND name NOT IN ({placeholders})" if names else ""
                cursor = self.conn.execute(
                    f"DELETE FROM issue_fields WHERE issue_id IN (SELECT id FROM issues WHERE project_id = ?) {name_filter}",
                    (project_id, *names),
                )
                logger.info("Purged %d stored values of removed fields in project %d", cursor.rowcount, project_id)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        self._workflow_cache[project_id] = workflow

    # -- Milestones ----------------------------------------------------------

    def create_milestone(self, project: int | str, name: str, *, due_date: str | None = None) -> MilestoneDict:
        project_id = self._resolve_project_id(project)
        check_name("milestone", name)
        if due_date is not None:
            date.fromisoformat(due_date)  # raises ValueError on bad input
        existing = self.conn.execute(
            "SELECT 1 FROM milestones WHERE project_id = ? AND name = ?",
            (project_id, name),
        ).fetchone()
        if existing is not None:
            msg = f"Milestone '{name}' already exists"
            raise ValueError(msg)
        try:
            self.conn.execute(
                "INSERT INTO milestones (project_id, name, due_date) VALUES (?, ?, ?)",
                (project_id, name, due_date),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_milestone(project_id, name)

    def get_milestone(self, project: int | str, name: str) -> MilestoneDict:
        project_id = self._resolve_project_id(project)
        row = self.conn.execute(
            "SELECT * FROM milestones WHERE project_id = ? AND name = ?",
            (project_id, name),
        ).fetchone()
        if row is None:
            msg = f"Milestone not found: {name}"
            raise KeyError(msg)
        return MilestoneDict(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            due_date=row["due_date"],
            closed=bool(row["closed"]),
        )

    def list_milestones(self, project: int | str) -> list[MilestoneDict]:
        project_id = self._resolve_project_id(project)
        rows = self.conn.execute(
            "SELECT * FROM milestones WHERE project_id = ? ORDER BY due_date IS NULL, due_date, name",
            (project_id,),
        ).fetchall()
        return [
            MilestoneDict(id=r["id"], project_id=r["project_id"], name=r["name"], due_date=r["due_date"], closed=bool(r["closed"]))
            for r in rows
        ]
