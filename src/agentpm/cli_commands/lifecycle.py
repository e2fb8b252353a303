"""CLI commands for the epic lifecycle: start/done for epics, phases and tasks, start-next, cancel-task."""

from __future__ import annotations

import click

from agentpm.cli_common import command_errors, echo_outcome, epic_options, get_engine


@click.command("start-epic")
@epic_options
def start_epic(epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Start the epic."""
    with command_errors("start-epic", as_json, time=when):
        outcome = get_engine(epic_file).start_epic(when)
    echo_outcome(outcome, as_json)


@click.command("done-epic")
@epic_options
def done_epic(epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Complete the epic once every phase is done and no test is failing."""
    with command_errors("done-epic", as_json, time=when):
        outcome = get_engine(epic_file).complete_epic(when)
    echo_outcome(outcome, as_json)


@click.command("start-phase")
@click.argument("phase_id")
@epic_options
def start_phase(phase_id: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Start a pending phase (only one phase may be active)."""
    with command_errors("start-phase", as_json, id=phase_id, time=when):
        outcome = get_engine(epic_file).start_phase(phase_id, when)
    echo_outcome(outcome, as_json)


@click.command("done-phase")
@click.argument("phase_id")
@epic_options
def done_phase(phase_id: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Complete the active phase."""
    with command_errors("done-phase", as_json, id=phase_id, time=when):
        outcome = get_engine(epic_file).complete_phase(phase_id, when)
    echo_outcome(outcome, as_json)


@click.command("start-task")
@click.argument("task_id")
@epic_options
def start_task(task_id: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Start a pending task in the active phase."""
    with command_errors("start-task", as_json, id=task_id, time=when):
        outcome = get_engine(epic_file).start_task(task_id, when)
    echo_outcome(outcome, as_json)


@click.command("done-task")
@click.argument("task_id")
@epic_options
def done_task(task_id: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Complete the active task once its tests are finished."""
    with command_errors("done-task", as_json, id=task_id, time=when):
        outcome = get_engine(epic_file).complete_task(task_id, when)
    echo_outcome(outcome, as_json)


@click.command("cancel-task")
@click.argument("task_id")
@click.argument("reason", required=False, default="")
@epic_options
def cancel_task(task_id: str, reason: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Cancel a pending or active task."""
    with command_errors("cancel-task", as_json, id=task_id, reason=reason, time=when):
        outcome = get_engine(epic_file).cancel_task(task_id, reason, when)
    echo_outcome(outcome, as_json)


@click.command("start-next")
@epic_options
def start_next(epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Auto-advance: start the next task, or close the phase and open the next."""
    with command_errors("start-next", as_json, time=when):
        plan = get_engine(epic_file).start_next(when)
    echo_outcome(plan, as_json)
    if not as_json and plan.action == "complete_epic":
        click.echo("Next: agentpm done-epic")


def register(cli: click.Group) -> None:
    """Register lifecycle commands with the CLI group."""
    cli.add_command(start_epic)
    cli.add_command(done_epic)
    cli.add_command(start_phase)
    cli.add_command(done_phase)
    cli.add_command(start_task)
    cli.add_command(done_task)
    cli.add_command(cancel_task)
    cli.add_command(start_next)
