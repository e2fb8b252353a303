"""CLI tests for lifecycle and test-recording commands."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from agentpm.cli import cli


def _invoke(runner: CliRunner, *args: str) -> str:
    result = runner.invoke(cli, list(args))
    assert result.exit_code == 0, result.output
    return result.output


class TestEpicCommands:
    def test_start_epic(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        assert "Epic Sample epic started" in _invoke(runner, "start-epic")
        assert "already started. No action needed." in _invoke(runner, "start-epic")

    def test_start_epic_json(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        data = json.loads(_invoke(runner, "start-epic", "--json"))
        assert data["applied"] is True
        assert data["status"] == "wip"
        assert data["transitions"][0]["previous_status"] == "pending"

    def test_done_epic_blocked(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        result = runner.invoke(cli, ["done-epic", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["code"] == "epic_completion_blocked"

    def test_explicit_time(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic", "--time", "2030-01-01T00:00:00Z")
        events = json.loads(_invoke(runner, "events", "--json"))
        assert events[0]["timestamp"] == "2030-01-01T00:00:00Z"

    def test_bad_time(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_project
        before = (root / "epic.xml").read_text()
        result = runner.invoke(cli, ["start-epic", "--time", "yesterday"])
        assert result.exit_code == 1
        assert "Error: Invalid time format: 'yesterday'" in result.output
        assert "Hint: Use ISO 8601" in result.output
        assert (root / "epic.xml").read_text() == before


class TestPhaseAndTaskCommands:
    def test_start_task_in_inactive_phase(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        result = runner.invoke(cli, ["start-task", "P2_T1"])
        assert result.exit_code == 1
        assert "phase P2 is not active" in result.output
        assert "Hint: Phase 'P2' is not active: run 'agentpm start-phase P2'" in result.output

    def test_unknown_id_json(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        result = runner.invoke(cli, ["start-phase", "P9", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["code"] == "not_found"
        assert data["id"] == "P9"

    def test_second_phase_rejected(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        _invoke(runner, "start-phase", "P1")
        result = runner.invoke(cli, ["start-phase", "P2", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "phase_constraint_violation"

    def test_cancel_task(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        output = _invoke(runner, "cancel-task", "P1_T2", "out of scope")
        assert "Task P1_T2 (Configure) cancelled: out of scope" in output
        data = json.loads(_invoke(runner, "show", "task", "P1_T2", "--json"))
        assert data["status"] == "cancelled"

    def test_start_next_lists_transitions(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        output = _invoke(runner, "start-next")
        assert "Started Phase P1 and Task P1_T1 (auto-selected)" in output
        assert "phase P1: pending -> wip" in output
        assert "task P1_T1: pending -> wip" in output


class TestTestCommands:
    def test_fail_requires_reason(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        result = runner.invoke(cli, ["fail-test", "T1"])
        assert result.exit_code == 2

    def test_blank_reason_rejected(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        _invoke(runner, "start-next")
        _invoke(runner, "start-test", "T1")
        result = runner.invoke(cli, ["fail-test", "T1", "  ", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "missing_reason"

    def test_pass_batch_all_or_nothing(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        _invoke(runner, "start-next")
        _invoke(runner, "start-test", "T1")
        result = runner.invoke(cli, ["pass-batch", "T1", "T2", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["code"] == "batch_validation_failed"
        assert data["valid_ids"] == ["T1"]
        shown = json.loads(_invoke(runner, "show", "test", "T1", "--json"))
        assert shown["status"] == "wip"

    def test_fail_batch(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        _invoke(runner, "start-next")
        _invoke(runner, "start-test", "T1")
        output = _invoke(runner, "fail-batch", "T1", "--reason", "flaky")
        assert "Batch failed 1 test(s): T1: flaky" in output
        assert "1 failing" in _invoke(runner, "failing")


class TestFullWorkflow:
    def test_epic_to_completion(self, cli_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_project
        _invoke(runner, "start-epic")
        _invoke(runner, "start-next")
        _invoke(runner, "start-test", "T1")
        _invoke(runner, "pass-test", "T1")
        _invoke(runner, "done-task", "P1_T1")

        assert "Started Task P1_T2" in _invoke(runner, "start-next")
        _invoke(runner, "start-test", "T2")
        _invoke(runner, "fail-test", "T2", "config missing")
        result = runner.invoke(cli, ["done-task", "P1_T2"])
        assert result.exit_code == 1
        _invoke(runner, "pass-test", "T2")
        _invoke(runner, "done-task", "P1_T2")

        output = _invoke(runner, "start-next")
        assert "Completed Phase P1. Started Phase P2 and Task P2_T1" in output
        _invoke(runner, "start-test", "T3")
        _invoke(runner, "pass-test", "T3")
        _invoke(runner, "done-task", "P2_T1")

        output = _invoke(runner, "start-next")
        assert "Epic ready for completion" in output
        assert "Next: agentpm done-epic" in output
        _invoke(runner, "done-epic")

        status = json.loads(_invoke(runner, "status", "--json"))
        assert status["status"] == "done"
        assert status["completion_percentage"] == 100
        assert status["failing_tests"] == 0
