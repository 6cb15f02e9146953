"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .ticketry/config.json."""

    prefix: str
    project: str
    version: int


class LastActivityDict(TypedDict):
    date: ISOTimestamp
    description: str
    user: str | None


class EffectiveFieldDict(TypedDict):
    name: str
    type: str
    values: list[str]


class FieldRowDict(TypedDict):
    name: str
    value: str | None
    type: str
    ordinal: int


class IssueDict(TypedDict):
    id: int
    project_id: int
    number: int
    reference: str
    uuid: str
    state: str
    state_category: str
    title: str
    description: str
    milestone: str | None
    submitter: str | None
    submit_date: ISOTimestamp
    num_votes: int
    num_comments: int
    last_activity: LastActivityDict
    version: int
    fields: list[EffectiveFieldDict]


class ProjectDict(TypedDict):
    id: int
    name: str
    created_at: ISOTimestamp


class MilestoneDict(TypedDict):
    id: int
    project_id: int
    name: str
    due_date: str | None
    closed: bool


class CommentRecord(TypedDict):
    id: int
    issue_id: int
    author: str
    text: str
    created_at: ISOTimestamp


class ChangeRecord(TypedDict):
    id: int
    issue_id: int
    change_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    created_at: ISOTimestamp


class WatchRecord(TypedDict):
    issue_id: int
    user: str
    watching: bool
