"""CLI commands for tests: start, pass, fail, cancel, and batch pass/fail."""

from __future__ import annotations

import click

from agentpm.cli_common import command_errors, echo_outcome, epic_options, get_engine


@click.command("start-test")
@click.argument("test_id")
@epic_options
def start_test(test_id: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Start running a pending test."""
    with command_errors("start-test", as_json, id=test_id, time=when):
        outcome = get_engine(epic_file).start_test(test_id, when)
    echo_outcome(outcome, as_json)


@click.command("pass-test")
@click.argument("test_id")
@epic_options
def pass_test(test_id: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Record a pass for an in-progress test."""
    with command_errors("pass-test", as_json, id=test_id, time=when):
        outcome = get_engine(epic_file).pass_test(test_id, when)
    echo_outcome(outcome, as_json)


@click.command("fail-test")
@click.argument("test_id")
@click.argument("reason")
@epic_options
def fail_test(test_id: str, reason: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Record a failure; REASON is required."""
    with command_errors("fail-test", as_json, id=test_id, reason=reason, time=when):
        outcome = get_engine(epic_file).fail_test(test_id, reason, when)
    echo_outcome(outcome, as_json)


@click.command("cancel-test")
@click.argument("test_id")
@click.argument("reason")
@epic_options
def cancel_test(test_id: str, reason: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Cancel a pending or in-progress test; REASON is required."""
    with command_errors("cancel-test", as_json, id=test_id, reason=reason, time=when):
        outcome = get_engine(epic_file).cancel_test(test_id, reason, when)
    echo_outcome(outcome, as_json)


@click.command("pass-batch")
@click.argument("test_ids", nargs=-1, required=True)
@epic_options
def pass_batch(test_ids: tuple[str, ...], epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Pass several tests at once. Nothing changes unless every id is valid."""
    with command_errors("pass-batch", as_json, ids=list(test_ids), time=when):
        outcome = get_engine(epic_file).pass_batch(list(test_ids), when)
    echo_outcome(outcome, as_json)


@click.command("fail-batch")
@click.argument("test_ids", nargs=-1, required=True)
@click.option("--reason", "-r", default="", help="Failure note recorded on every test")
@epic_options
def fail_batch(
    test_ids: tuple[str, ...],
    reason: str,
    epic_file: str | None,
    when: str | None,
    as_json: bool,
) -> None:
    """Fail several tests at once. Nothing changes unless every id is valid."""
    with command_errors("fail-batch", as_json, ids=list(test_ids), reason=reason, time=when):
        outcome = get_engine(epic_file).fail_batch(list(test_ids), reason, when)
    echo_outcome(outcome, as_json)


def register(cli: click.Group) -> None:
    """Register test commands with the CLI group."""
    cli.add_command(start_test)
    cli.add_command(pass_test)
    cli.add_command(fail_test)
    cli.add_command(cancel_test)
    cli.add_command(pass_batch)
    cli.add_command(fail_batch)
