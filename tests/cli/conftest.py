"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from ticketry.cli import cli


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize project "demo" (built-in workflow) in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test", "--project", "demo"])
    assert result.exit_code == 0, result.output
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def _create(runner: CliRunner, title: str, *args: str) -> int:
    """Create an issue and return its number, parsed from 'Created demo#N: ...'."""
    result = runner.invoke(cli, ["create", title, *args])
    assert result.exit_code == 0, result.output
    return int(result.output.split(":")[0].split("#")[1])
