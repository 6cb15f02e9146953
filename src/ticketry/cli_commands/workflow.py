"""CLI commands for the project workflow and milestones."""

from __future__ import annotations

import shutil
from pathlib import Path

import click

from ticketry.cli_common import echo_json, error_message, fail, get_db, project_name
from ticketry.core import WORKFLOW_FILENAME, find_ticketry_root
from ticketry.workflow import load_workflow_file


@click.group()
def workflow() -> None:
    """Inspect or replace the project workflow."""


@workflow.command("show")
@click.option("--state", "state_name", default=None, help="Only show one state")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def workflow_show(state_name: str | None, as_json: bool) -> None:
    """Show states, their categories, and the fields each state uses."""
    with get_db() as db:
        spec = db.get_workflow(project_name())
        if state_name is not None and spec.find_state_spec(state_name) is None:
            fail(f"Unknown state: {state_name}", as_json=as_json)
        if as_json:
            echo_json(spec.to_dict())
            return

        click.echo(f"Initial state: {spec.initial_state}")
        click.echo("\nStates:")
        for s in spec.states:
            if state_name is not None and s.name != state_name:
                continue
            click.echo(f"  {s.name} [{s.category}]")
            if s.description:
                click.echo(f"    {s.description}")
            click.echo(f"    fields: {', '.join(s.fields) if s.fields else '(none)'}")
        if state_name is None:
            click.echo("\nFields:")
            for f in spec.get_field_specs():
                extra = f" options={list(f.options)}" if f.options else ""
                multi = " multiple" if f.allow_multiple else ""
                default = f" default={f.default!r}" if f.default is not None else ""
                click.echo(f"  {f.name}: {f.type}{multi}{extra}{default}")


@workflow.command("validate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def workflow_validate(path: Path) -> None:
    """Check a workflow JSON file without loading it."""
    try:
        spec = load_workflow_file(path)
    except ValueError as e:
        fail(str(e))
    click.echo(f"OK: {len(spec.states)} states, {len(spec.field_specs)} fields")


@workflow.command("load")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--purge", is_flag=True, help="Delete stored values of fields the new workflow drops")
def workflow_load(path: Path, purge: bool) -> None:
    """Replace the project workflow with the one in PATH.

    The file is also copied to .ticketry/workflow.json.
    """
    try:
        spec = load_workflow_file(path)
    except ValueError as e:
        fail(str(e))
    with get_db() as db:
        try:
            db.set_workflow(project_name(), spec, purge_removed_fields=purge)
        except ValueError as e:
            fail(error_message(e))
    target = find_ticketry_root() / WORKFLOW_FILENAME
    if path.resolve() != target.resolve():
        shutil.copyfile(path, target)
    click.echo(f"Loaded workflow: {len(spec.states)} states, {len(spec.field_specs)} fields")


@click.group()
def milestone() -> None:
    """Manage milestones."""


@milestone.command("add")
@click.argument("name")
@click.option("--due", "due_date", default=None, help="Due date (YYYY-MM-DD)")
def milestone_add(name: str, due_date: str | None) -> None:
    """Create a milestone."""
    with get_db() as db:
        try:
            db.create_milestone(project_name(), name, due_date=due_date)
        except ValueError as e:
            fail(str(e))
        click.echo(f"Created milestone {name}")


@milestone.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def milestone_list(as_json: bool) -> None:
    """List milestones by due date."""
    with get_db() as db:
        milestones = db.list_milestones(project_name())
        if as_json:
            echo_json(milestones)
            return
        for m in milestones:
            click.echo(f"  {m['name']:<20} {m['due_date'] or '-'}{' (closed)' if m['closed'] else ''}")
        if not milestones:
            click.echo("No milestones")
