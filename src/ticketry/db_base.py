"""Shared utilities, errors, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ticketry.core import Issue
    from ticketry.workflow import WorkflowSpec


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StaleIssueError(RuntimeError):
    """Raised when an issue was modified since the caller last read it."""

    def __init__(self, issue_id: int, expected_version: int | None) -> None:
        self.issue_id = issue_id
        self.expected_version = expected_version
        super().__init__(
            f"Issue {issue_id} was modified concurrently (expected version {expected_version}). Reload and retry."
        )


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_issue(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by TicketDB at composition time.
    """

    db_path: Path
    _conn: sqlite3.Connection | None
    _workflow_cache: dict[int, WorkflowSpec]

    @property
    def conn(self) -> sqlite3.Connection: ...

    def get_issue(self, issue_id: int) -> Issue: ...

    def get_workflow(self, project: int | str) -> WorkflowSpec: ...
