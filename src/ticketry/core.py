"""Core database facade for the issue tracker.

Single source of truth for all SQLite operations. Both the CLI and the HTTP
API import from this module. No daemon, no sync -- just direct SQLite with
WAL mode.

Convention-based discovery: each project root has a `.ticketry/` directory
containing `ticketry.db` (SQLite), `config.json` (project name, prefix,
version) and optionally `workflow.json` (the project's workflow spec).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ticketry.db_activity import ActivityMixin
from ticketry.db_base import StaleIssueError
from ticketry.db_fields import FieldsMixin
from ticketry.db_issues import IssuesMixin
from ticketry.db_projects import ProjectsMixin
from ticketry.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from ticketry.fields import EffectiveField
from ticketry.types.core import ISOTimestamp, IssueDict, LastActivityDict, ProjectConfig
from ticketry.workflow import StateCategory, WorkflowSpec

logger = logging.getLogger(__name__)

__all__ = [
    "BUILTIN_FIELDS",
    "CONFIG_FILENAME",
    "DB_FILENAME",
    "TICKETRY_DIR_NAME",
    "WORKFLOW_FILENAME",
    "Issue",
    "LastActivity",
    "StaleIssueError",
    "TicketDB",
    "find_ticketry_root",
    "read_config",
    "write_config",
]

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

TICKETRY_DIR_NAME = ".ticketry"
DB_FILENAME = "ticketry.db"
CONFIG_FILENAME = "config.json"
WORKFLOW_FILENAME = "workflow.json"


def find_ticketry_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .ticketry/ directory.

    Returns the .ticketry/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / TICKETRY_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {TICKETRY_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(ticketry_dir: Path) -> ProjectConfig:
    """Read .ticketry/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="ticketry", project="default", version=1)
    config_path = ticketry_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("%s must contain a JSON object, using defaults", config_path)
        return defaults
    config: ProjectConfig = {**defaults, **result}  # type: ignore[typeddict-item]
    return config


def write_config(ticketry_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .ticketry/config.json."""
    config_path = ticketry_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

# Display name -> Issue attribute, in the order built-in columns are shown.
BUILTIN_FIELDS: dict[str, str] = {
    "Number": "number",
    "State": "state",
    "Title": "title",
    "Description": "description",
    "Submitter": "submitter",
    "Submit Date": "submit_date",
    "Update Date": "last_activity.date",
    "Votes": "num_votes",
    "Comments": "num_comments",
    "Milestone": "milestone",
}


@dataclass
class LastActivity:
    date: str = ""
    description: str = ""
    user: str | None = None

    def to_dict(self) -> LastActivityDict:
        return {"date": ISOTimestamp(self.date), "description": self.description, "user": self.user}


@dataclass
class Issue:
    id: int
    project_id: int
    number: int
    title: str
    state: str
    project_name: str = ""
    uuid: str = ""
    description: str = ""
    milestone: str | None = None
    submitter: str | None = None
    submit_date: str = ""
    num_votes: int = 0
    num_comments: int = 0
    last_activity: LastActivity = field(default_factory=LastActivity)
    version: int = 0
    # Computed (not stored directly)
    state_category: StateCategory = "open"
    fields: dict[str, EffectiveField] = field(default_factory=dict)

    @property
    def number_str(self) -> str:
        return str(self.number)

    @property
    def no_space_title(self) -> str:
        return "".join(self.title.split())

    @property
    def reference(self) -> str:
        return f"{self.project_name}#{self.number}"

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "number": self.number,
            "reference": self.reference,
            "uuid": self.uuid,
            "state": self.state,
            "state_category": self.state_category,
            "title": self.title,
            "description": self.description,
            "milestone": self.milestone,
            "submitter": self.submitter,
            "submit_date": ISOTimestamp(self.submit_date),
            "num_votes": self.num_votes,
            "num_comments": self.num_comments,
            "last_activity": self.last_activity.to_dict(),
            "version": self.version,
            "fields": [f.to_dict() for f in self.fields.values()],
        }


# ---------------------------------------------------------------------------
# TicketDB -- the core
# ---------------------------------------------------------------------------


class TicketDB(ProjectsMixin, IssuesMixin, FieldsMixin, ActivityMixin):
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and API."""

    def __init__(self, db_path: str | Path, *, check_same_thread: bool = True) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._workflow_cache: dict[int, WorkflowSpec] = {}

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> TicketDB:
        """Create a TicketDB by discovering .ticketry/ from project_path (or cwd).

        Also makes sure the configured project exists, seeding it with
        ``workflow.json`` when present and the built-in workflow otherwise.
        """
        ticketry_dir = find_ticketry_root(project_path)
        config = read_config(ticketry_dir)
        db = cls(ticketry_dir / DB_FILENAME, check_same_thread=check_same_thread)
        db.initialize()
        db.ensure_project(config.get("project", "default"), workflow_file=ticketry_dir / WORKFLOW_FILENAME)
        return db

    def __enter__(self) -> TicketDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def reconnect(self, *, check_same_thread: bool) -> None:
        """Close the current connection; the next access reopens it with new settings."""
        self.close()
        self._check_same_thread = check_same_thread

    def initialize(self) -> None:
        """Create tables for a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = (
                f"Database schema version {current_version} is newer than this ticketry "
                f"(supports {CURRENT_SCHEMA_VERSION}). Upgrade ticketry."
            )
            raise RuntimeError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
