"""Shared CLI helpers for ``cli.py`` and the ``cli_commands/*.py`` modules.

Provides engine discovery, the common ``--file``/``--time``/``--json``
options, and one place that turns typed errors into output and exit codes.
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from agentpm.config import (
    CONFIG_FILENAME,
    Config,
    find_config,
    read_config,
    require_current_epic,
    resolve_epic_path,
)
from agentpm.engine import EpicEngine
from agentpm.errors import AgentPMError
from agentpm.lifecycle import Outcome
from agentpm.planner import Plan

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def load_config() -> tuple[Path, Config]:
    """Return (config_path, config). A missing file yields cwd defaults."""
    try:
        config_path = find_config()
    except FileNotFoundError:
        return Path.cwd() / CONFIG_FILENAME, Config()
    return config_path, read_config(config_path)


def get_engine(file_override: str | None = None) -> EpicEngine:
    """Build an engine for ``--file`` or the configured current epic.

    Raises ConfigError when neither is available.
    """
    config_path, config = load_config()
    if file_override:
        path = Path(file_override).expanduser().resolve()
    else:
        path = resolve_epic_path(config_path, require_current_epic(config))
    return EpicEngine(path, prerequisite_tests_block=config.prerequisite_tests_block)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def json_option(f: F) -> F:
    return click.option("--json", "as_json", is_flag=True, help="Output as JSON")(f)  # type: ignore[return-value]


def epic_options(f: F) -> F:
    """``--file``, ``--time`` and ``--json``, shared by every epic command."""
    f = json_option(f)
    f = click.option(
        "--time",
        "-t",
        "when",
        default=None,
        help="ISO-8601 timestamp to record instead of now",
    )(f)
    f = click.option(
        "--file",
        "-f",
        "epic_file",
        default=None,
        type=click.Path(dir_okay=False),
        help="Epic file to use instead of the configured one",
    )(f)
    return f


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def fail(exc: Exception, as_json: bool) -> NoReturn:
    """Print an error (with its hint) and exit 1."""
    if isinstance(exc, AgentPMError):
        data = exc.to_dict()
        hint = exc.hint
    else:
        data = {"error": str(exc), "code": "invalid_input"}
        hint = ""
    if as_json:
        echo_json(data)
    else:
        click.echo(f"Error: {data['error']}", err=True)
        if hint:
            click.echo(f"Hint: {hint}", err=True)
    sys.exit(1)


def echo_outcome(result: Outcome | Plan, as_json: bool) -> None:
    if as_json:
        echo_json(result.to_dict())
        return
    click.echo(result.message)
    transitions = result.transitions
    if len(transitions) > 1:
        for t in transitions:
            click.echo(f"  {t.kind} {t.id}: {t.previous_status} -> {t.new_status}")


@contextmanager
def command_errors(command: str, as_json: bool, **args: Any) -> Iterator[None]:
    """Log the command and map ValueError (typed or not) to ``fail``."""
    t0 = time.monotonic()
    try:
        yield
    except ValueError as exc:
        logger.warning(
            "command_error",
            extra={"command": command, "args_data": args, "error": str(exc)},
        )
        fail(exc, as_json)
    duration_ms = round((time.monotonic() - t0) * 1000, 1)
    logger.info("command", extra={"command": command, "args_data": args, "duration_ms": duration_ms})
