# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin -- this prevents circular imports.
"""Typed return-value contracts for ticketry core and API layers."""

from __future__ import annotations

from ticketry.types.core import (
    ChangeRecord,
    CommentRecord,
    EffectiveFieldDict,
    FieldRowDict,
    ISOTimestamp,
    IssueDict,
    LastActivityDict,
    MilestoneDict,
    ProjectConfig,
    ProjectDict,
    WatchRecord,
)
from ticketry.types.workflow import FieldSpecDict, StateSpecDict, WorkflowSpecDict

__all__ = [
    "ChangeRecord",
    "CommentRecord",
    "EffectiveFieldDict",
    "FieldRowDict",
    "FieldSpecDict",
    "ISOTimestamp",
    "IssueDict",
    "LastActivityDict",
    "MilestoneDict",
    "ProjectConfig",
    "ProjectDict",
    "StateSpecDict",
    "WatchRecord",
    "WorkflowSpecDict",
]
