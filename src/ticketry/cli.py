"""CLI for the ticketry issue tracker.

Convention-based: discovers .ticketry/ by walking up from cwd.

Usage:
    ticketry init --project web                     # Initialize .ticketry/ in cwd
    ticketry create "Fix the bug" -f Type=Bug       # Create issue
    ticketry show 3                                 # Show issue #3
    ticketry list --state Open --sort Priority      # List issues
    ticketry state 3 Closed -f Resolution=Fixed     # Change state
    ticketry set-field 3 Labels=ui Labels=login     # Replace a field's values
    ticketry fields 3                               # Effective custom fields
    ticketry excluded 3 --state Closed              # Fields hidden in a state
    ticketry workflow show                          # Show the project workflow
    ticketry dashboard                              # Serve the HTTP API
"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

import click

from ticketry import __version__
from ticketry.cli_commands import fields as fields_commands
from ticketry.cli_commands import issues as issue_commands
from ticketry.cli_commands import workflow as workflow_commands
from ticketry.core import (
    DB_FILENAME,
    TICKETRY_DIR_NAME,
    WORKFLOW_FILENAME,
    TicketDB,
    read_config,
    write_config,
)
from ticketry.logging import log_command, setup_logging
from ticketry.workflow import load_workflow_file


@click.group()
@click.version_option(version=__version__, prog_name="ticketry")
@click.option("--actor", default="cli", help="Actor identity for the change history (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """Ticketry -- issue tracker with per-state custom fields."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor
    if ctx.invoked_subcommand is not None:
        ctx.obj["log"] = ctx.with_resource(log_command(ctx.invoked_subcommand, {"actor": actor}))


@cli.command()
@click.option("--prefix", default=None, help="Short prefix shown before issue numbers (default: directory name)")
@click.option("--project", "project", default=None, help="Project name (default: directory name)")
@click.option(
    "--workflow",
    "workflow_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Workflow JSON to use instead of the built-in default",
)
def init(prefix: str | None, project: str | None, workflow_path: Path | None) -> None:
    """Initialize .ticketry/ in the current directory."""
    cwd = Path.cwd()
    ticketry_dir = cwd / TICKETRY_DIR_NAME

    if ticketry_dir.exists():
        click.echo(f"{TICKETRY_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        with TicketDB.from_project(cwd):
            pass
        return

    if workflow_path is not None:
        try:
            load_workflow_file(workflow_path)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    prefix = prefix or cwd.name
    project = project or cwd.name
    ticketry_dir.mkdir()
    write_config(ticketry_dir, {"prefix": prefix, "project": project, "version": 1})
    setup_logging(ticketry_dir)
    if workflow_path is not None:
        shutil.copyfile(workflow_path, ticketry_dir / WORKFLOW_FILENAME)

    with TicketDB.from_project(cwd) as db:
        workflow = db.get_workflow(read_config(ticketry_dir)["project"])

    click.echo(f"Initialized {TICKETRY_DIR_NAME}/ in {cwd}")
    click.echo(f"  Project:  {project}")
    click.echo(f"  States:   {', '.join(workflow.state_names())}")
    click.echo(f"  Database: {ticketry_dir / DB_FILENAME}")


@cli.command()
@click.option("--port", default=8377, type=int, help="Server port (default 8377)")
@click.option("--host", default="127.0.0.1", help="Interface to bind (default 127.0.0.1)")
def dashboard(port: int, host: str) -> None:
    """Serve the HTTP API for the current project."""
    from ticketry.dashboard import main as dashboard_main

    dashboard_main(port=port, host=host)


for _cmd in (
    issue_commands.create,
    issue_commands.show,
    issue_commands.list_issues,
    issue_commands.update,
    issue_commands.state,
    issue_commands.delete,
    issue_commands.comment,
    issue_commands.comments,
    issue_commands.vote,
    issue_commands.watch,
    issue_commands.history,
    fields_commands.set_field,
    fields_commands.clear_field,
    fields_commands.fields,
    fields_commands.excluded,
    workflow_commands.workflow,
    workflow_commands.milestone,
):
    cli.add_command(_cmd)


if __name__ == "__main__":
    cli()
