"""CLI commands for custom fields: set-field, clear-field, fields, excluded."""

from __future__ import annotations

import click

from ticketry.cli_common import echo_json, error_message, fail, format_values, get_db, resolve_issue
from ticketry.db_base import StaleIssueError
from ticketry.fields import FieldShape
from ticketry.validation import parse_field_args


@click.command("set-field")
@click.argument("number", type=int)
@click.argument("assignments", nargs=-1, required=True)
@click.option("--expected-version", type=int, default=None, help="Fail if the issue changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def set_field(
    ctx: click.Context,
    number: int,
    assignments: tuple[str, ...],
    expected_version: int | None,
    as_json: bool,
) -> None:
    """Replace custom field values, e.g. ``Priority=Major Labels=ui Labels=db``.

    Every named field loses its previous values. ``Name=`` clears a field.
    """
    try:
        values = parse_field_args(assignments)
    except ValueError as e:
        fail(str(e), as_json=as_json)

    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        try:
            issue = db.set_fields(issue.id, values, expected_version=expected_version, actor=ctx.obj["actor"])
        except (ValueError, LookupError, StaleIssueError) as e:
            fail(error_message(e), as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
            return
        for name in values:
            eff = issue.fields.get(name)
            shown = format_values(eff.values) if eff is not None else "(not applicable in this state)"
            click.echo(f"{issue.reference} {name}: {shown}")


@click.command("clear-field")
@click.argument("number", type=int)
@click.argument("name")
@click.pass_context
def clear_field(ctx: click.Context, number: int, name: str) -> None:
    """Delete all stored values of a field, including fields the workflow no longer defines."""
    with get_db() as db:
        issue = resolve_issue(db, number)
        if db.clear_field(issue.id, name, actor=ctx.obj["actor"]):
            click.echo(f"Cleared {name} on {issue.reference}")
        else:
            click.echo(f"{issue.reference} has no stored values for {name}")


@click.command()
@click.argument("number", type=int)
@click.option("--raw", is_flag=True, help="Show stored rows instead of effective values")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def fields(number: int, raw: bool, as_json: bool) -> None:
    """Show an issue's custom fields for its current state."""
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        if raw:
            rows = db.get_field_rows(issue.id)
            if as_json:
                echo_json([r.to_dict() for r in rows])
                return
            for r in rows:
                click.echo(f"  {r.name:<14} {r.type:<8} {r.ordinal:>6}  {r.value if r.value is not None else '(null)'}")
            return

        if as_json:
            echo_json([f.to_dict() for f in issue.fields.values()])
            return
        if not issue.fields:
            click.echo(f"{issue.reference} has no custom field values in state {issue.state}")
        for name, eff in issue.fields.items():
            click.echo(f"  {name:<14} {format_values(eff.values)}")


@click.command()
@click.argument("number", type=int)
@click.option("--state", "target_state", default=None, help="State to render for (default: the issue's state)")
@click.option("--field", "field_names", multiple=True, help="Fields on the form; any subset of the workflow fields (default: all)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def excluded(number: int, target_state: str | None, field_names: tuple[str, ...], as_json: bool) -> None:
    """List the fields a form should hide for an issue in a given state.

    A field is hidden when the state does not use it or the issue has no
    value for it.
    """
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        workflow = db.get_workflow(issue.project_id)
        names = list(field_names) or [f.name for f in workflow.get_field_specs()]
        try:
            shape = FieldShape.from_names(names)
            slots = db.get_excluded_fields(issue.id, shape, target_state or issue.state)
        except (ValueError, LookupError) as e:
            fail(error_message(e), as_json=as_json)

        hidden = [s.field_name for s in shape.slots if s.attr in slots]
        if as_json:
            echo_json({"state": target_state or issue.state, "excluded": hidden})
            return
        for name in hidden:
            click.echo(f"  {name}")
        if not hidden:
            click.echo("No fields excluded")
