"""CLI commands for issues: create, show, list, update, state, delete, comments, votes, watches."""

from __future__ import annotations

import click

from ticketry.cli_common import (
    echo_json,
    error_message,
    fail,
    format_values,
    get_db,
    project_name,
    resolve_issue,
)
from ticketry.core import Issue
from ticketry.db_base import StaleIssueError
from ticketry.validation import parse_field_args

_ISSUE_ERRORS = (ValueError, LookupError, StaleIssueError)


def _print_issue_line(issue: Issue) -> None:
    click.echo(f"#{issue.number:<5} {issue.state:<12} {issue.title}")


@click.command()
@click.argument("title")
@click.option("--description", "-d", default="", help="Description")
@click.option("--state", default=None, help="Initial state (default: the workflow's initial state)")
@click.option("--milestone", "-m", default=None, help="Milestone name")
@click.option("--field", "-f", multiple=True, help="Custom field as Name=value (repeat a name for multiple values)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    description: str,
    state: str | None,
    milestone: str | None,
    field: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a new issue."""
    try:
        fields = parse_field_args(field)
    except ValueError as e:
        fail(str(e), as_json=as_json)

    with get_db() as db:
        try:
            issue = db.create_issue(
                project_name(),
                title,
                description=description,
                submitter=ctx.obj["actor"],
                milestone=milestone,
                state=state,
                fields=fields,
                actor=ctx.obj["actor"],
            )
        except _ISSUE_ERRORS as e:
            fail(error_message(e), as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
        else:
            click.echo(f"Created {issue.reference}: {issue.title} [{issue.state}]")


@click.command()
@click.argument("number", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(number: int, as_json: bool) -> None:
    """Show issue details."""
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
            return

        click.echo(f"Issue:     {issue.reference}")
        click.echo(f"Title:     {issue.title}")
        click.echo(f"State:     {issue.state} ({issue.state_category})")
        if issue.milestone:
            click.echo(f"Milestone: {issue.milestone}")
        if issue.submitter:
            click.echo(f"Submitter: {issue.submitter}")
        click.echo(f"Submitted: {issue.submit_date}")
        click.echo(f"Updated:   {issue.last_activity.date} ({issue.last_activity.description})")
        click.echo(f"Votes:     {issue.num_votes}")
        click.echo(f"Comments:  {issue.num_comments}")
        if issue.description:
            click.echo(f"\n--- Description ---\n{issue.description}")
        if issue.fields:
            click.echo("\n--- Fields ---")
            for name, eff in issue.fields.items():
                click.echo(f"  {name}: {format_values(eff.values)}")


@click.command("list")
@click.option("--state", default=None, help="Filter by state")
@click.option("--milestone", "-m", default=None, help="Filter by milestone")
@click.option("--sort", "order_by", default="Number", help="Built-in or custom field to sort by (default: Number)")
@click.option("--desc", "descending", is_flag=True, help="Sort descending")
@click.option("--search", default=None, help="Only issues whose title contains this text (spaces ignored)")
@click.option("--limit", default=100, type=int, help="Max results (default 100)")
@click.option("--offset", default=0, type=int, help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_issues(
    state: str | None,
    milestone: str | None,
    order_by: str,
    descending: bool,
    search: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List issues."""
    with get_db() as db:
        try:
            if search:
                issues = db.find_issues_by_title(project_name(), search, limit=limit)
            else:
                issues = db.list_issues(
                    project_name(),
                    state=state,
                    milestone=milestone,
                    order_by=order_by,
                    descending=descending,
                    limit=limit,
                    offset=offset,
                )
        except _ISSUE_ERRORS as e:
            fail(error_message(e), as_json=as_json)

        if as_json:
            echo_json([i.to_dict() for i in issues])
            return
        for issue in issues:
            _print_issue_line(issue)
        if not issues:
            click.echo("No issues found")


@click.command()
@click.argument("number", type=int)
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--milestone", "-m", default=None, help="New milestone (empty string to clear)")
@click.option("--expected-version", type=int, default=None, help="Fail if the issue changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    number: int,
    title: str | None,
    description: str | None,
    milestone: str | None,
    expected_version: int | None,
    as_json: bool,
) -> None:
    """Update an issue's title, description, or milestone."""
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        try:
            issue = db.update_issue(
                issue.id,
                title=title,
                description=description,
                milestone=milestone,
                expected_version=expected_version,
                actor=ctx.obj["actor"],
            )
        except _ISSUE_ERRORS as e:
            fail(error_message(e), as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
        else:
            click.echo(f"Updated {issue.reference}")


@click.command()
@click.argument("number", type=int)
@click.argument("new_state")
@click.option("--field", "-f", multiple=True, help="Field to set in the same change, as Name=value")
@click.option("--expected-version", type=int, default=None, help="Fail if the issue changed since this version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def state(
    ctx: click.Context,
    number: int,
    new_state: str,
    field: tuple[str, ...],
    expected_version: int | None,
    as_json: bool,
) -> None:
    """Move an issue to another workflow state."""
    try:
        fields = parse_field_args(field)
    except ValueError as e:
        fail(str(e), as_json=as_json)

    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        old_state = issue.state
        try:
            issue = db.change_state(
                issue.id,
                new_state,
                fields=fields,
                expected_version=expected_version,
                actor=ctx.obj["actor"],
            )
        except _ISSUE_ERRORS as e:
            fail(error_message(e), as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
        else:
            click.echo(f"{issue.reference}: {old_state} -> {issue.state}")


@click.command()
@click.argument("number", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def delete(number: int, yes: bool) -> None:
    """Delete an issue and everything attached to it."""
    with get_db() as db:
        issue = resolve_issue(db, number)
        if not yes:
            click.confirm(f"Delete {issue.reference} ({issue.title})?", abort=True)
        db.delete_issue(issue.id)
        click.echo(f"Deleted {issue.reference}")


@click.command()
@click.argument("number", type=int)
@click.argument("text")
@click.pass_context
def comment(ctx: click.Context, number: int, text: str) -> None:
    """Add a comment to an issue."""
    with get_db() as db:
        issue = resolve_issue(db, number)
        try:
            comment_id = db.add_comment(issue.id, text, author=ctx.obj["actor"])
        except ValueError as e:
            fail(str(e))
        click.echo(f"Added comment {comment_id} to {issue.reference}")


@click.command()
@click.argument("number", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def comments(number: int, as_json: bool) -> None:
    """List comments on an issue."""
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        records = db.get_comments(issue.id)
        if as_json:
            echo_json(records)
            return
        for c in records:
            click.echo(f"[{c['created_at']}] {c['author'] or '(anonymous)'}: {c['text']}")
        if not records:
            click.echo("No comments")


@click.command()
@click.argument("number", type=int)
@click.option("--undo", is_flag=True, help="Withdraw the vote instead")
@click.pass_context
def vote(ctx: click.Context, number: int, undo: bool) -> None:
    """Vote for an issue as the current actor."""
    with get_db() as db:
        issue = resolve_issue(db, number)
        try:
            changed = db.unvote(issue.id, ctx.obj["actor"]) if undo else db.vote(issue.id, ctx.obj["actor"])
        except ValueError as e:
            fail(str(e))
        votes = db.get_issue(issue.id).num_votes
        if not changed:
            click.echo(f"No change ({votes} votes)")
        else:
            click.echo(f"{'Withdrew vote on' if undo else 'Voted for'} {issue.reference} ({votes} votes)")


@click.command()
@click.argument("number", type=int)
@click.option("--off", "stop", is_flag=True, help="Stop watching")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def watch(ctx: click.Context, number: int, stop: bool, as_json: bool) -> None:
    """Watch (or stop watching) an issue as the current actor."""
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        try:
            record = db.watch(issue.id, ctx.obj["actor"], watching=not stop)
        except ValueError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(record)
        else:
            click.echo(f"{'Stopped watching' if stop else 'Watching'} {issue.reference}")


@click.command()
@click.argument("number", type=int)
@click.option("--limit", default=50, type=int, help="Max entries (default 50)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def history(number: int, limit: int, as_json: bool) -> None:
    """Show an issue's change history, newest first."""
    with get_db() as db:
        issue = resolve_issue(db, number, as_json=as_json)
        changes = db.get_changes(issue.id, limit=limit)
        if as_json:
            echo_json(changes)
            return
        for ch in changes:
            detail = ""
            if ch["old_value"] is not None or ch["new_value"] is not None:
                detail = f": {ch['old_value']} -> {ch['new_value']}"
            click.echo(f"[{ch['created_at']}] {ch['change_type']} by {ch['actor'] or '?'}{detail}")
