# src/ticketry/workflow_data.py
"""Built-in default workflow.

Logic lives in workflow.py; this file is pure data. The dict matches the
shape accepted by ``parse_workflow()`` and written by ``WorkflowSpec.to_dict()``.
"""

from __future__ import annotations

from typing import Any

_COMMON_FIELDS = ["Type", "Priority", "Severity", "Labels", "Assignee"]

DEFAULT_WORKFLOW: dict[str, Any] = {
    "initial_state": "Open",
    "states": [
        {
            "name": "Open",
            "category": "open",
            "description": "Reported and waiting to be picked up",
            "fields": [*_COMMON_FIELDS, "Due Date", "Estimate"],
        },
        {
            "name": "In Progress",
            "category": "wip",
            "description": "Somebody is working on it",
            "fields": [*_COMMON_FIELDS, "Due Date", "Estimate", "Regression"],
        },
        {
            "name": "Closed",
            "category": "done",
            "description": "Finished, for whatever reason",
            "fields": [*_COMMON_FIELDS, "Regression", "Resolution"],
        },
    ],
    "fields": [
        {
            "name": "Type",
            "type": "choice",
            "description": "Kind of work",
            "options": ["Bug", "Feature", "Improvement", "Task"],
            "default": "Task",
        },
        {
            "name": "Priority",
            "type": "choice",
            "description": "How soon it should be handled",
            "options": ["Critical", "Major", "Minor", "Trivial"],
            "default": "Major",
        },
        {
            "name": "Severity",
            "type": "choice",
            "description": "Impact on users",
            "options": ["High", "Medium", "Low"],
        },
        {
            "name": "Labels",
            "type": "text",
            "description": "Free-form labels",
            "allow_multiple": True,
        },
        {
            "name": "Assignee",
            "type": "text",
            "description": "Who is responsible",
        },
        {
            "name": "Due Date",
            "type": "date",
            "description": "Target completion date",
        },
        {
            "name": "Estimate",
            "type": "number",
            "description": "Estimated effort in hours",
        },
        {
            "name": "Regression",
            "type": "boolean",
            "description": "Whether this worked in an earlier release",
        },
        {
            "name": "Resolution",
            "type": "choice",
            "description": "How the issue was closed",
            "options": ["Fixed", "Won't Fix", "Duplicate", "Cannot Reproduce"],
        },
    ],
}
