"""CLI commands for project setup: init-project, show-config, switch-epic, validate-epic, fix-xml."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from agentpm.cli_common import command_errors, echo_json, get_engine, json_option, load_config
from agentpm.config import (
    CONFIG_FILENAME,
    find_config,
    read_config,
    resolve_epic_path,
    switch_back,
    switch_to,
    write_config,
)
from agentpm.storage import FileStorage, repair_epic_file


@click.command("init-project")
@click.argument("epic_file")
@click.option("--name", "project_name", default=None, help="Project name (default: directory name)")
@json_option
def init_project(epic_file: str, project_name: str | None, as_json: bool) -> None:
    """Register EPIC_FILE as the current epic for this directory."""
    cwd = Path.cwd()
    config_path = cwd / CONFIG_FILENAME
    config = read_config(config_path)
    with command_errors("init-project", as_json, epic_file=epic_file):
        epic = FileStorage().load(resolve_epic_path(config_path, epic_file))
        config.current_epic = epic_file
        config.project_name = project_name or config.project_name or cwd.name
        write_config(config_path, config)

    if as_json:
        echo_json({"path": str(config_path), "epic_id": epic.id, **config.to_dict()})
        return
    click.echo(f"Initialized {CONFIG_FILENAME} in {cwd}")
    click.echo(f"  Project: {config.project_name}")
    click.echo(f"  Epic: {epic.id} ({epic.name}) -> {epic_file}")
    click.echo("\nNext: agentpm start-epic")


@click.command("show-config")
@json_option
def show_config(as_json: bool) -> None:
    """Show the active configuration and where it was found."""
    try:
        config_path = find_config()
    except FileNotFoundError:
        config_path = None
    _, config = load_config()

    if as_json:
        echo_json({"path": str(config_path) if config_path else None, **config.to_dict()})
        return
    if config_path is None:
        click.echo(f"No {CONFIG_FILENAME} found. Run 'agentpm init-project <epic.xml>' first.")
        return
    click.echo(f"Config: {config_path}")
    click.echo(f"  Project: {config.project_name or '-'}")
    click.echo(f"  Current epic: {config.current_epic or '-'}")
    click.echo(f"  Previous epic: {config.previous_epic or '-'}")
    click.echo(f"  Default assignee: {config.default_assignee}")
    click.echo(f"  Prerequisite tests block: {'yes' if config.prerequisite_tests_block else 'no'}")


@click.command("switch-epic")
@click.argument("epic_file", required=False)
@click.option("--back", is_flag=True, help="Switch back to the previous epic")
@json_option
def switch_epic(epic_file: str | None, back: bool, as_json: bool) -> None:
    """Make EPIC_FILE the current epic, or return to the previous one."""
    if back == bool(epic_file):
        raise click.UsageError("Pass either EPIC_FILE or --back")
    config_path, config = load_config()
    with command_errors("switch-epic", as_json, epic_file=epic_file, back=back):
        config = switch_back(config) if back else switch_to(config, epic_file or "")
        epic = FileStorage().load(resolve_epic_path(config_path, config.current_epic))
        write_config(config_path, config)

    if as_json:
        echo_json({"path": str(config_path), "epic_id": epic.id, **config.to_dict()})
        return
    click.echo(f"Switched to {epic.id} ({epic.name}): {config.current_epic}")
    if config.previous_epic:
        click.echo(f"  Previous: {config.previous_epic}")


@click.command("validate-epic")
@click.option("--file", "-f", "epic_file", default=None, help="Epic file to use instead of the configured one")
@json_option
def validate_epic(epic_file: str | None, as_json: bool) -> None:
    """Check the epic's structure and lifecycle invariants."""
    with command_errors("validate-epic", as_json, epic_file=epic_file):
        report = get_engine(epic_file).validate()

    if as_json:
        echo_json(report)
    elif report["valid"]:
        click.echo(f"Epic {report['epic_id']} is valid")
        for warning in report["warnings"]:
            click.echo(f"  WARNING: {warning}")
    else:
        click.echo("Epic is invalid:", err=True)
        for issue in report["issues"]:
            click.echo(f"  - {issue}", err=True)
    if not report["valid"]:
        sys.exit(1)

@click.command("fix-xml")
@click.option("--file", "-f", "epic_file", default=None, help="Epic file to use instead of the configured one")
@click.option("--backup/--no-backup", default=True, help="Keep the original as <file>.bak (default: on)")
@click.option("--dry-run", is_flag=True, help="List the repairs without writing anything")
@json_option
def fix_xml(epic_file: str | None, backup: bool, dry_run: bool, as_json: bool) -> None:
    """Escape stray '&' and '<' characters so the epic file loads again."""
    with command_errors("fix-xml", as_json, epic_file=epic_file, backup=backup, dry_run=dry_run):
        result = repair_epic_file(get_engine(epic_file).path, backup=backup, dry_run=dry_run)

    if as_json:
        echo_json(result.to_dict())
        return
    if not result.repairs:
        click.echo(f"No XML problems found in {result.path}")
        return
    click.echo(f"Found {len(result.repairs)} XML problem(s) in {result.path}:")
    for number, repair in enumerate(result.repairs, 1):
        click.echo(f"  {number}. line {repair.line}: {repair.description}")
    if dry_run:
        click.echo("\nDry run: no changes made.")
        return
    if result.backup:
        click.echo(f"Backup: {result.backup}")
    click.echo(f"Repaired {result.path}")



def register(cli: click.Group) -> None:
    """Register project commands with the CLI group."""
    cli.add_command(init_project)
    cli.add_command(show_config)
    cli.add_command(switch_epic)
    cli.add_command(validate_epic)
    cli.add_command(fix_xml)
