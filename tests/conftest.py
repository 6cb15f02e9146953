"""Shared pytest fixtures for ticketry tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from click.testing import CliRunner

from ticketry.core import TicketDB
from ticketry.workflow import WorkflowSpec
from tests._db_factory import make_db, sample_workflow


@dataclass
class PopulatedDB:
    """A TicketDB plus the project name and issue ids created by ``populated_db``."""

    db: TicketDB
    project: str
    ids: dict[str, int] = field(default_factory=dict)


@pytest.fixture
def workflow() -> WorkflowSpec:
    return sample_workflow()


@pytest.fixture
def db(tmp_path: Path) -> Generator[TicketDB, None, None]:
    """Fresh TicketDB with project "test" on the sample workflow."""
    d = make_db(tmp_path)
    yield d
    d.close()


@pytest.fixture
def populated_db(db: TicketDB) -> PopulatedDB:
    """TicketDB pre-populated with a representative issue set.

    Creates, in project "test":
    - #1 "Login fails on Safari": Open, Type=Bug, Severity=High, Labels=[ui, login]
    - #2 "Add CSV export": Open, Type=Task (default), Estimate=5, milestone v1,
      one comment by "tester"
    - #3 "Crash on save": Closed, Severity=Low, Resolution=Fixed
    """
    db.create_milestone("test", "v1", due_date="2026-12-01")
    a = db.create_issue(
        "test",
        "Login fails on Safari",
        submitter="alice",
        fields={"Type": "Bug", "Severity": "High", "Labels": ["ui", "login"]},
    )
    b = db.create_issue("test", "Add CSV export", milestone="v1", fields={"Estimate": 5})
    c = db.create_issue("test", "Crash on save", state="Closed", fields={"Severity": "Low", "Resolution": "Fixed"})
    db.add_comment(b.id, "Needs a design first", author="tester")
    return PopulatedDB(db=db, project="test", ids={"a": a.id, "b": b.id, "c": c.id})


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_ticketry_logger() -> Generator[None, None, None]:
    """Detach file handlers that CLI or dashboard code attached during a test."""
    yield
    logger = logging.getLogger("ticketry")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
