"""CLI tests for workflow and milestone commands."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from ticketry.cli import cli
from ticketry.core import TICKETRY_DIR_NAME, WORKFLOW_FILENAME
from tests._db_factory import TEST_WORKFLOW
from tests.cli.conftest import _create


def _write_workflow(path: Path, raw: dict[str, object]) -> Path:
    path.write_text(json.dumps(raw))
    return path


class TestWorkflowShow:
    def test_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["workflow", "show"])
        assert result.exit_code == 0
        assert "Initial state: Open" in result.output
        assert "Closed [done]" in result.output
        assert "Priority: choice" in result.output
        assert "Labels: text multiple" in result.output

    def test_show_one_state(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["workflow", "show", "--state", "Closed"])
        assert "Closed [done]" in result.output
        assert "Open [open]" not in result.output
        assert "Resolution" in result.output

    def test_show_unknown_state(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["workflow", "show", "--state", "Nope"])
        assert result.exit_code == 1
        assert "Unknown state: Nope" in result.output

    def test_show_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["workflow", "show", "--json"])
        data = json.loads(result.output)
        assert [s["name"] for s in data["states"]] == ["Open", "In Progress", "Closed"]


class TestWorkflowValidate:
    def test_valid(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        path = _write_workflow(root / "wf.json", TEST_WORKFLOW)
        result = runner.invoke(cli, ["workflow", "validate", str(path)])
        assert result.exit_code == 0
        assert "OK: 3 states, 7 fields" in result.output

    def test_invalid(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        path = _write_workflow(root / "wf.json", {"states": [{"name": "Open", "fields": ["Ghost"]}]})
        result = runner.invoke(cli, ["workflow", "validate", str(path)])
        assert result.exit_code == 1
        assert "Ghost" in result.output


class TestWorkflowLoad:
    def test_load_replaces_workflow(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        _create(runner, "Existing", "-f", "Priority=Minor")
        path = _write_workflow(root / "wf.json", TEST_WORKFLOW)
        result = runner.invoke(cli, ["workflow", "load", str(path)])
        assert result.exit_code == 0, result.output
        assert "Loaded workflow: 3 states, 7 fields" in result.output
        assert (root / TICKETRY_DIR_NAME / WORKFLOW_FILENAME).is_file()
        # Priority is no longer part of the workflow, so it is no longer effective
        fields = json.loads(runner.invoke(cli, ["fields", "1", "--json"]).output)
        assert "Priority" not in {f["name"] for f in fields}
        raw = json.loads(runner.invoke(cli, ["fields", "1", "--raw", "--json"]).output)
        assert "Priority" in {r["name"] for r in raw}

    def test_load_purge(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        _create(runner, "Existing", "-f", "Priority=Minor")
        path = _write_workflow(root / "wf.json", TEST_WORKFLOW)
        result = runner.invoke(cli, ["workflow", "load", str(path), "--purge"])
        assert result.exit_code == 0
        raw = json.loads(runner.invoke(cli, ["fields", "1", "--raw", "--json"]).output)
        assert "Priority" not in {r["name"] for r in raw}

    def test_load_rejects_orphaned_states(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        _create(runner, "Existing")
        path = _write_workflow(root / "wf.json", {"states": [{"name": "New"}]})
        result = runner.invoke(cli, ["workflow", "load", str(path)])
        assert result.exit_code == 1
        assert "missing states still used by issues: Open" in result.output
        assert not (root / TICKETRY_DIR_NAME / WORKFLOW_FILENAME).exists()


class TestMilestones:
    def test_add_and_list(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        assert "Created milestone v2" in runner.invoke(cli, ["milestone", "add", "v2"]).output
        runner.invoke(cli, ["milestone", "add", "v1", "--due", "2026-12-01"])
        data = json.loads(runner.invoke(cli, ["milestone", "list", "--json"]).output)
        assert [m["name"] for m in data] == ["v1", "v2"]
        result = runner.invoke(cli, ["milestone", "list"])
        assert "2026-12-01" in result.output

    def test_bad_due_date(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["milestone", "add", "v1", "--due", "soon"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_issue_in_milestone(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["milestone", "add", "v1"])
        _create(runner, "Planned", "-m", "v1")
        _create(runner, "Unplanned")
        result = runner.invoke(cli, ["list", "-m", "v1", "--json"])
        assert [i["title"] for i in json.loads(result.output)] == ["Planned"]
