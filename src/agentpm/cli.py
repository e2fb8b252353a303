"""CLI for agentpm.

Convention-based: discovers .agentpm.json by walking up from cwd.

Usage:
    agentpm init-project epic.xml         # Register the current epic
    agentpm start-epic                    # Begin work
    agentpm start-next                    # Auto-advance to the next task
    agentpm start-test T1                 # Begin a test run
    agentpm pass-test T1                  # Record a pass
    agentpm fail-test T1 "reason"         # Record a failure
    agentpm done-task 1A_1                # Complete a task
    agentpm done-phase 1A                 # Complete a phase
    agentpm done-epic                     # Complete the epic
    agentpm status                        # Progress summary
    agentpm current                       # Active phase / task
    agentpm handoff                       # Report for the next agent
    agentpm fix-xml --dry-run             # Find unescaped & and < in the epic file
"""

from __future__ import annotations

import contextlib

import click

from agentpm import __version__
from agentpm.cli_commands import lifecycle as _lifecycle
from agentpm.cli_commands import project as _project
from agentpm.cli_commands import queries as _queries
from agentpm.cli_commands import reports as _reports
from agentpm.cli_commands import verification as _verification
from agentpm.config import find_config
from agentpm.logging import enable_verbose, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="agentpm")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """agentpm: drive an epic through phases, tasks and tests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        enable_verbose()
    try:
        config_path = find_config()
    except FileNotFoundError:
        return
    # The diagnostic log is optional; a read-only project still works.
    with contextlib.suppress(OSError):
        setup_logging(config_path.parent)


_project.register(cli)
_lifecycle.register(cli)
_verification.register(cli)
_queries.register(cli)
_reports.register(cli)


if __name__ == "__main__":
    cli()
