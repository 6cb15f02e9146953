"""Core CRUD tests for projects, issues, milestones, and listing."""

from __future__ import annotations

from pathlib import Path

import pytest

from ticketry.core import TicketDB
from ticketry.db_base import StaleIssueError
from ticketry.workflow import StateNotFoundError, default_workflow, parse_workflow
from tests._db_factory import TEST_WORKFLOW
from tests.conftest import PopulatedDB


class TestProjects:
    def test_create_project_uses_default_workflow(self, db: TicketDB) -> None:
        db.create_project("other")
        assert db.get_workflow("other") == default_workflow()

    def test_duplicate_project(self, db: TicketDB) -> None:
        with pytest.raises(ValueError, match="already exists"):
            db.create_project("test")

    def test_unknown_project(self, db: TicketDB) -> None:
        with pytest.raises(KeyError):
            db.get_project("nope")

    def test_ensure_project_is_idempotent(self, db: TicketDB) -> None:
        first = db.ensure_project("fresh")
        second = db.ensure_project("fresh")
        assert first["id"] == second["id"]
        assert [p["name"] for p in db.list_projects()] == ["fresh", "test"]

    def test_workflow_survives_reconnect(self, db: TicketDB) -> None:
        expected = db.get_workflow("test")
        db.reconnect(check_same_thread=True)
        db._workflow_cache.clear()
        assert db.get_workflow("test") == expected

    def test_set_workflow_rejects_orphaned_states(self, populated_db: PopulatedDB) -> None:
        raw = dict(TEST_WORKFLOW)
        raw["states"] = [s for s in TEST_WORKFLOW["states"] if s["name"] != "Closed"]
        with pytest.raises(ValueError, match="Closed"):
            populated_db.db.set_workflow("test", parse_workflow(raw))

    def test_set_workflow_purges_removed_fields(self, populated_db: PopulatedDB) -> None:
        db = populated_db.db
        raw = {
            "states": [
                {"name": "Open", "fields": ["Severity"]},
                {"name": "In Progress", "category": "wip", "fields": ["Severity"]},
                {"name": "Closed", "category": "done", "fields": ["Severity"]},
            ],
            "fields": [{"name": "Severity", "type": "choice", "options": ["High", "Medium", "Low"]}],
        }
        db.set_workflow("test", parse_workflow(raw), purge_removed_fields=True)
        names = {r.name for r in db.get_field_rows(populated_db.ids["a"])}
        assert names == {"Severity"}


class TestSchema:
    def test_fresh_db_has_schema_version(self, db: TicketDB) -> None:
        assert db.get_schema_version() == 1

    def test_newer_schema_refused(self, tmp_path: Path) -> None:
        d = TicketDB(tmp_path / "new.db")
        d.conn.execute("PRAGMA user_version = 99")
        d.conn.commit()
        with pytest.raises(RuntimeError, match="newer"):
            d.initialize()
        d.close()


class TestCreateIssue:
    def test_numbers_are_sequential_per_project(self, db: TicketDB) -> None:
        db.create_project("other")
        a = db.create_issue("test", "First")
        b = db.create_issue("test", "Second")
        c = db.create_issue("other", "Elsewhere")
        assert (a.number, b.number, c.number) == (1, 2, 1)
        assert b.reference == "test#2"

    def test_defaults(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "  Trim me  ", submitter="alice")
        assert issue.title == "Trim me"
        assert issue.state == "Open"
        assert issue.state_category == "open"
        assert issue.version == 0
        assert issue.submitter == "alice"
        assert issue.last_activity.description == "submitted"
        assert issue.no_space_title == "Trimme"
        assert len(issue.uuid) == 36
        # Field defaults for fields applicable in the initial state
        assert issue.fields["Type"].values == ["Task"]

    def test_initial_fields(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Bug", fields={"Type": "Bug", "Labels": ["ui", "auth"]})
        assert issue.fields["Type"].values == ["Bug"]
        assert issue.fields["Labels"].values == ["auth", "ui"]

    def test_default_not_applied_when_field_inapplicable(self, db: TicketDB) -> None:
        raw = {
            "states": [{"name": "New"}, {"name": "Done", "category": "done", "fields": ["Type"]}],
            "fields": [{"name": "Type", "type": "choice", "options": ["Bug", "Task"], "default": "Task"}],
        }
        db.create_project("lean", workflow=parse_workflow(raw))
        issue = db.create_issue("lean", "Nothing applies")
        assert db.get_field_rows(issue.id) == []

    def test_initial_state(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Already done", state="Closed", fields={"Resolution": "Fixed"})
        assert issue.state == "Closed"
        assert issue.state_category == "done"
        assert issue.fields["Resolution"].values == ["Fixed"]

    def test_unknown_state(self, db: TicketDB) -> None:
        with pytest.raises(StateNotFoundError):
            db.create_issue("test", "Nope", state="Archived")

    def test_empty_title(self, db: TicketDB) -> None:
        with pytest.raises(ValueError, match="Title cannot be empty"):
            db.create_issue("test", "   ")

    def test_bad_field_writes_nothing(self, db: TicketDB) -> None:
        with pytest.raises(ValueError):
            db.create_issue("test", "Bad", fields={"Severity": "Urgent"})
        assert db.list_issues("test") == []
        # The number was not consumed either
        assert db.create_issue("test", "Good").number == 1

    def test_unknown_milestone(self, db: TicketDB) -> None:
        with pytest.raises(KeyError, match="Milestone not found"):
            db.create_issue("test", "Planned", milestone="v9")


class TestLookup:
    def test_get_issue_not_found(self, db: TicketDB) -> None:
        with pytest.raises(KeyError):
            db.get_issue(999)

    def test_get_by_number(self, populated_db: PopulatedDB) -> None:
        issue = populated_db.db.get_issue_by_number("test", 2)
        assert issue.id == populated_db.ids["b"]
        assert issue.milestone == "v1"

    def test_get_by_number_missing(self, populated_db: PopulatedDB) -> None:
        with pytest.raises(KeyError):
            populated_db.db.get_issue_by_number("test", 42)

    def test_find_by_title_ignores_whitespace(self, populated_db: PopulatedDB) -> None:
        found = populated_db.db.find_issues_by_title("test", "csv  ex port")
        assert [i.id for i in found] == [populated_db.ids["b"]]

    def test_find_by_title_escapes_wildcards(self, populated_db: PopulatedDB) -> None:
        assert populated_db.db.find_issues_by_title("test", "%") == []


class TestListIssues:
    def test_default_order_is_number(self, populated_db: PopulatedDB) -> None:
        issues = populated_db.db.list_issues("test")
        assert [i.number for i in issues] == [1, 2, 3]

    def test_filter_by_state(self, populated_db: PopulatedDB) -> None:
        issues = populated_db.db.list_issues("test", state="Closed")
        assert [i.id for i in issues] == [populated_db.ids["c"]]

    def test_filter_by_unknown_state(self, populated_db: PopulatedDB) -> None:
        with pytest.raises(StateNotFoundError):
            populated_db.db.list_issues("test", state="Archived")

    def test_filter_by_milestone(self, populated_db: PopulatedDB) -> None:
        issues = populated_db.db.list_issues("test", milestone="v1")
        assert [i.id for i in issues] == [populated_db.ids["b"]]

    def test_sort_by_builtin_title(self, populated_db: PopulatedDB) -> None:
        issues = populated_db.db.list_issues("test", order_by="Title")
        assert [i.title for i in issues] == ["Add CSV export", "Crash on save", "Login fails on Safari"]

    def test_sort_by_custom_field_ordinal(self, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        issues = populated_db.db.list_issues("test", order_by="Severity")
        # High (0), Low (2), then the issue without a severity
        assert [i.id for i in issues] == [ids["a"], ids["c"], ids["b"]]

    def test_sort_by_custom_field_descending(self, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        issues = populated_db.db.list_issues("test", order_by="Severity", descending=True)
        assert [i.id for i in issues] == [ids["c"], ids["a"], ids["b"]]

    def test_sort_puts_cleared_field_last(self, db: TicketDB) -> None:
        low = db.create_issue("test", "Low", fields={"Severity": "Low"})
        cleared = db.create_issue("test", "Cleared", fields={"Severity": "Medium"})
        high = db.create_issue("test", "High", fields={"Severity": "High"})
        db.set_field_value(cleared.id, "Severity", None)
        ascending = db.list_issues("test", order_by="Severity")
        assert [i.id for i in ascending] == [high.id, low.id, cleared.id]
        descending = db.list_issues("test", order_by="Severity", descending=True)
        assert [i.id for i in descending] == [low.id, high.id, cleared.id]

    def test_sort_negative_number_is_not_cleared(self, db: TicketDB) -> None:
        minus_five = db.create_issue("test", "Minus five", fields={"Estimate": -5})
        cleared = db.create_issue("test", "Cleared", fields={"Estimate": 2})
        minus_one = db.create_issue("test", "Minus one", fields={"Estimate": -1})
        db.set_field_value(cleared.id, "Estimate", None)
        ascending = db.list_issues("test", order_by="Estimate")
        assert [i.id for i in ascending] == [minus_five.id, minus_one.id, cleared.id]
        descending = db.list_issues("test", order_by="Estimate", descending=True)
        assert [i.id for i in descending] == [minus_one.id, minus_five.id, cleared.id]

    def test_unknown_sort_field(self, populated_db: PopulatedDB) -> None:
        with pytest.raises(ValueError, match="Unknown sort field"):
            populated_db.db.list_issues("test", order_by="Color")

    def test_paging(self, populated_db: PopulatedDB) -> None:
        issues = populated_db.db.list_issues("test", limit=1, offset=1)
        assert [i.number for i in issues] == [2]

    def test_bad_limit(self, populated_db: PopulatedDB) -> None:
        with pytest.raises(ValueError, match="limit"):
            populated_db.db.list_issues("test", limit=0)


class TestUpdateIssue:
    def test_update_title_records_change(self, populated_db: PopulatedDB) -> None:
        db = populated_db.db
        issue = db.update_issue(populated_db.ids["a"], title="Login broken on Safari", actor="bob")
        assert issue.title == "Login broken on Safari"
        assert issue.version == 1
        assert issue.last_activity.user == "bob"
        change = db.get_changes(issue.id)[0]
        assert change["change_type"] == "title_changed"
        assert change["old_value"] == "Login fails on Safari"

    def test_no_op_does_not_bump_version(self, populated_db: PopulatedDB) -> None:
        issue = populated_db.db.update_issue(populated_db.ids["a"], title="Login fails on Safari")
        assert issue.version == 0

    def test_clear_milestone(self, populated_db: PopulatedDB) -> None:
        issue = populated_db.db.update_issue(populated_db.ids["b"], milestone="")
        assert issue.milestone is None

    def test_stale_version(self, populated_db: PopulatedDB) -> None:
        db = populated_db.db
        a = populated_db.ids["a"]
        db.update_issue(a, description="first", expected_version=0)
        with pytest.raises(StaleIssueError):
            db.update_issue(a, description="second", expected_version=0)
        assert db.get_issue(a).description == "first"


class TestChangeState:
    def test_change_state_keeps_rows_and_filters_fields(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Plan", fields={"Due Date": "2026-06-01", "Labels": ["x"]})
        closed = db.change_state(issue.id, "Closed", fields={"Resolution": "Fixed"}, actor="bob")
        assert closed.state == "Closed"
        assert "Due Date" not in closed.fields
        assert closed.fields["Resolution"].values == ["Fixed"]
        assert closed.fields["Labels"].values == ["x"]
        # The stored date is kept and reappears when the issue is reopened
        reopened = db.change_state(issue.id, "Open")
        assert reopened.fields["Due Date"].values == ["2026-06-01"]

    def test_records_change(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Work")
        db.change_state(issue.id, "In Progress", actor="bob")
        change = db.get_changes(issue.id)[0]
        assert change["change_type"] == "state_changed"
        assert (change["old_value"], change["new_value"]) == ("Open", "In Progress")
        assert db.get_issue(issue.id).last_activity.description == "changed state to In Progress"

    def test_unknown_state_changes_nothing(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Work")
        with pytest.raises(StateNotFoundError):
            db.change_state(issue.id, "Archived")
        assert db.get_issue(issue.id).state == "Open"

    def test_bad_field_changes_nothing(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Work")
        with pytest.raises(ValueError):
            db.change_state(issue.id, "Closed", fields={"Resolution": "Maybe"})
        reloaded = db.get_issue(issue.id)
        assert reloaded.state == "Open"
        assert reloaded.version == 0

    def test_stale_version(self, db: TicketDB) -> None:
        issue = db.create_issue("test", "Work")
        db.change_state(issue.id, "In Progress", expected_version=0)
        with pytest.raises(StaleIssueError):
            db.change_state(issue.id, "Closed", expected_version=0)


class TestDeleteIssue:
    def test_delete_cascades(self, populated_db: PopulatedDB) -> None:
        db = populated_db.db
        b = populated_db.ids["b"]
        db.delete_issue(b)
        with pytest.raises(KeyError):
            db.get_issue(b)
        assert db.get_field_rows(b) == []
        assert db.get_comments(b) == []

    def test_delete_missing(self, db: TicketDB) -> None:
        with pytest.raises(KeyError):
            db.delete_issue(999)


class TestMilestones:
    def test_create_and_list(self, db: TicketDB) -> None:
        db.create_milestone("test", "later")
        db.create_milestone("test", "v2", due_date="2027-01-01")
        db.create_milestone("test", "v1", due_date="2026-06-01")
        assert [m["name"] for m in db.list_milestones("test")] == ["v1", "v2", "later"]

    def test_bad_due_date(self, db: TicketDB) -> None:
        with pytest.raises(ValueError):
            db.create_milestone("test", "v1", due_date="soon")

    def test_duplicate(self, db: TicketDB) -> None:
        db.create_milestone("test", "v1")
        with pytest.raises(ValueError, match="already exists"):
            db.create_milestone("test", "v1")
