"""CLI commands for read-only queries: status, current, pending, failing, events, show."""

from __future__ import annotations

from typing import Any

import click

from agentpm.cli_common import command_errors, echo_json, get_engine, json_option
from agentpm.query import DEFAULT_EVENT_LIMIT, ENTITY_KINDS

_file_option = click.option(
    "--file", "-f", "epic_file", default=None, help="Epic file to use instead of the configured one"
)


@click.command()
@_file_option
@json_option
def status(epic_file: str | None, as_json: bool) -> None:
    """Show overall progress of the epic."""
    with command_errors("status", as_json):
        data = get_engine(epic_file).status()
    if as_json:
        echo_json(data)
        return
    click.echo(f"Epic: {data['name']} ({data['epic_id']})")
    click.echo(f"  Status: {data['status']}")
    click.echo(f"  Completion: {data['completion_percentage']}%")
    click.echo(f"  Phases: {data['completed_phases']}/{data['total_phases']} completed")
    click.echo(f"  Tasks: {data['completed_tasks']}/{data['total_tasks']} completed")
    click.echo(
        f"  Tests: {data['total_tests']} total, {data['passing_tests']} passing, {data['failing_tests']} failing"
    )
    if data["active_phase"]:
        click.echo(f"  Active phase: {data['active_phase']}")
    if data["active_task"]:
        click.echo(f"  Active task: {data['active_task']}")


@click.command()
@_file_option
@json_option
def current(epic_file: str | None, as_json: bool) -> None:
    """Show the active phase, active task, failing test count and next action."""
    with command_errors("current", as_json):
        state = get_engine(epic_file).current()
    if as_json:
        echo_json(state.to_dict())
        return
    click.echo(f"Active phase: {state.active_phase or '(none)'}")
    click.echo(f"Active task: {state.active_task or '(none)'}")
    click.echo(f"Failing tests: {state.failing_tests}")
    click.echo(f"Next action: {state.next_action}")


@click.command()
@_file_option
@json_option
def pending(epic_file: str | None, as_json: bool) -> None:
    """List every phase, task and test that is not done."""
    with command_errors("pending", as_json):
        data = get_engine(epic_file).pending()
    if as_json:
        echo_json(data)
        return
    groups: list[tuple[str, list[Any]]] = [
        ("Phases", list(data["phases"])),
        ("Tasks", list(data["tasks"])),
        ("Tests", list(data["tests"])),
    ]
    for label, items in groups:
        click.echo(f"{label} ({len(items)}):")
        for item in items:
            click.echo(f"  {item['id']:<12} [{item['status']}] {item['name']}")
    if not any(data.values()):
        click.echo("Nothing pending")


@click.command()
@_file_option
@json_option
def failing(epic_file: str | None, as_json: bool) -> None:
    """List failing tests with their failure notes."""
    with command_errors("failing", as_json):
        data = get_engine(epic_file).failing()
    if as_json:
        echo_json(data)
        return
    if not data:
        click.echo("No failing tests")
        return
    for t in data:
        note = f": {t['failure_note']}" if t["failure_note"] else ""
        click.echo(f"  {t['id']:<12} {t['name']} (task {t['task_id']}){note}")
    click.echo(f"\n{len(data)} failing")


@click.command()
@click.argument("limit", type=int, required=False, default=DEFAULT_EVENT_LIMIT)
@_file_option
@json_option
def events(limit: int, epic_file: str | None, as_json: bool) -> None:
    """Show the most recent events, newest first (LIMIT 1-100)."""
    with command_errors("events", as_json, limit=limit):
        found = get_engine(epic_file).events(limit)
    if as_json:
        echo_json([e.to_dict() for e in found])
        return
    for e in found:
        click.echo(f"  [{e.to_dict()['timestamp']}] {e.type}: {e.data}")
    if not found:
        click.echo("No events")


@click.command()
@click.argument("kind", type=click.Choice(ENTITY_KINDS))
@click.argument("entity_id", required=False)
@_file_option
@json_option
def show(kind: str, entity_id: str | None, epic_file: str | None, as_json: bool) -> None:
    """Show an epic, phase, task or test with its related children."""
    with command_errors("show", as_json, kind=kind, id=entity_id):
        data = get_engine(epic_file).show(kind, entity_id)
    if as_json:
        echo_json(data)
        return
    click.echo(f"{kind.capitalize()} {data['id']}: {data['name']}")
    click.echo(f"  Status: {data['status']}")
    if kind == "test":
        click.echo(f"  Result: {data['result']}")
        if data["failure_note"]:
            click.echo(f"  Failure: {data['failure_note']}")
        if data["cancellation_reason"]:
            click.echo(f"  Cancelled: {data['cancellation_reason']}")
    if kind == "epic":
        click.echo(f"  Completion: {data['completion_percentage']}%")
        click.echo(f"  Next action: {data['current_state']['next_action']}")
    if data.get("description"):
        click.echo(f"  Description: {data['description']}")
    for child in ("phases", "tasks", "tests"):
        if data.get(child):
            click.echo(f"  {child.capitalize()}:")
            for item in data[child]:
                click.echo(f"    {item['id']:<12} [{item['status']}] {item['name']}")


def register(cli: click.Group) -> None:
    """Register query commands with the CLI group."""
    cli.add_command(status)
    cli.add_command(current)
    cli.add_command(pending)
    cli.add_command(failing)
    cli.add_command(events)
    cli.add_command(show)
