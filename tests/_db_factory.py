"""Shared TicketDB factory and the sample workflow.

Importable by any conftest.py or test file in the test suite.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ticketry.core import TicketDB
from ticketry.workflow import WorkflowSpec, parse_workflow

# A compact workflow with one field of every type. "Due Date" only applies
# while Open, "Resolution" only once Closed.
TEST_WORKFLOW: dict[str, Any] = {
    "initial_state": "Open",
    "states": [
        {"name": "Open", "category": "open", "fields": ["Type", "Severity", "Labels", "Due Date", "Estimate"]},
        {"name": "In Progress", "category": "wip", "fields": ["Type", "Severity", "Labels", "Estimate", "Regression"]},
        {"name": "Closed", "category": "done", "fields": ["Type", "Severity", "Labels", "Resolution"]},
    ],
    "fields": [
        {"name": "Type", "type": "choice", "options": ["Bug", "Task"], "default": "Task"},
        {"name": "Severity", "type": "choice", "options": ["High", "Medium", "Low"]},
        {"name": "Labels", "type": "text", "allow_multiple": True},
        {"name": "Due Date", "type": "date"},
        {"name": "Estimate", "type": "number"},
        {"name": "Regression", "type": "boolean"},
        {"name": "Resolution", "type": "choice", "options": ["Fixed", "Won't Fix"]},
    ],
}


def sample_workflow() -> WorkflowSpec:
    return parse_workflow(TEST_WORKFLOW)


def make_db(
    tmp_path: Path,
    *,
    project: str = "test",
    workflow: WorkflowSpec | None = None,
    check_same_thread: bool = True,
) -> TicketDB:
    """Factory for TicketDB instances in tests.

    Creates *project* with *workflow* (default: ``TEST_WORKFLOW``).
    """
    d = TicketDB(tmp_path / "ticketry.db", check_same_thread=check_same_thread)
    d.initialize()
    d.create_project(project, workflow=workflow or sample_workflow())
    return d
