"""Shared CLI helpers used by ``cli.py`` and the ``cli_commands/*.py`` modules.

Kept separate from ``cli.py`` so command modules can import them without
circular imports.
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
from typing import Any, NoReturn

import click

from ticketry.core import TICKETRY_DIR_NAME, Issue, TicketDB, find_ticketry_root, read_config
from ticketry.logging import setup_logging

logger = logging.getLogger(__name__)


def get_db() -> TicketDB:
    """Discover .ticketry/, start file logging there, and return an open TicketDB."""
    try:
        ticketry_dir = find_ticketry_root()
    except FileNotFoundError:
        click.echo(f"No {TICKETRY_DIR_NAME}/ found. Run 'ticketry init' first.", err=True)
        sys.exit(1)
    setup_logging(ticketry_dir)
    try:
        return TicketDB.from_project(ticketry_dir.parent)
    except ValueError as e:
        # workflow.json present but invalid
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def project_name() -> str:
    """Name of the project configured in .ticketry/config.json."""
    return read_config(find_ticketry_root()).get("project", "default")


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    """Report an error the way every command does and exit 1."""
    ctx = click.get_current_context(silent=True)
    if ctx is not None and isinstance(ctx.obj, dict) and "log" in ctx.obj:
        ctx.obj["log"]["error"] = message
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def resolve_issue(db: TicketDB, number: int, *, as_json: bool = False) -> Issue:
    """Look up an issue of the configured project by its number, or fail."""
    try:
        return db.get_issue_by_number(project_name(), number)
    except KeyError:
        fail(f"Issue not found: #{number}", as_json=as_json)


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def format_values(values: list[str]) -> str:
    return ", ".join(values) if values else "(empty)"


def error_message(exc: Exception) -> str:
    """Human-readable message; KeyError would otherwise come out quoted."""
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc)
