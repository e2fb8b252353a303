"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from agentpm.cli import cli
from tests._epic_factory import write_epic


@pytest.fixture
def cli_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Write epic.xml into tmp_path, register it, and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    write_epic(tmp_path / "epic.xml")
    result = cli_runner.invoke(cli, ["init-project", "epic.xml"])
    assert result.exit_code == 0, result.output
    yield cli_runner, tmp_path
    os.chdir(original_cwd)
