"""CLI commands for reports and notes: handoff, docs, log."""

from __future__ import annotations

from pathlib import Path

import click

from agentpm.cli_common import command_errors, echo_json, epic_options, get_engine, json_option
from agentpm.events import NOTE_EVENT_TYPES
from agentpm.reports import DEFAULT_HANDOFF_LIMIT, render_handoff
from agentpm.storage import write_atomic


@click.command()
@click.option("--limit", "-n", default=DEFAULT_HANDOFF_LIMIT, type=int, help="Number of recent events to include")
@click.option("--file", "-f", "epic_file", default=None, help="Epic file to use instead of the configured one")
@json_option
def handoff(limit: int, epic_file: str | None, as_json: bool) -> None:
    """Summarize the epic for the next agent picking up the work."""
    with command_errors("handoff", as_json, limit=limit):
        report = get_engine(epic_file).handoff(limit)
    if as_json:
        echo_json(report)
        return
    click.echo(render_handoff(report), nl=False)


@click.command()
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write markdown to FILE")
@click.option("--file", "-f", "epic_file", default=None, help="Epic file to use instead of the configured one")
@json_option
def docs(output: str | None, epic_file: str | None, as_json: bool) -> None:
    """Generate markdown documentation of the epic's progress."""
    with command_errors("docs", as_json, output=output):
        markdown = get_engine(epic_file).docs()
        if output:
            try:
                write_atomic(Path(output), markdown)
            except OSError as exc:
                msg = f"Cannot write {output}: {exc}"
                raise ValueError(msg) from exc
    if as_json:
        echo_json({"output": output, "markdown": None if output else markdown})
    elif output:
        click.echo(f"Wrote {output}")
    else:
        click.echo(markdown, nl=False)


@click.command("log")
@click.argument("message")
@click.option(
    "--type",
    "event_type",
    default="implementation",
    type=click.Choice(sorted(NOTE_EVENT_TYPES)),
    help="Kind of note (default: implementation)",
)
@epic_options
def log_cmd(message: str, event_type: str, epic_file: str | None, when: str | None, as_json: bool) -> None:
    """Append a note event (implementation detail, blocker, decision...)."""
    with command_errors("log", as_json, type=event_type, time=when):
        event = get_engine(epic_file).log(message, event_type, when)
    if as_json:
        echo_json(event.to_dict())
        return
    click.echo(f"Logged {event.type} event {event.id}")


def register(cli: click.Group) -> None:
    """Register report commands with the CLI group."""
    cli.add_command(handoff)
    cli.add_command(docs)
    cli.add_command(log_cmd)
