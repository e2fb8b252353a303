"""MCP server for agentpm.

Exposes the epic lifecycle, queries and reports as MCP tools so an agent
can drive an epic without shelling out to the CLI. Reads and writes the
same epic file the CLI uses.

Usage:
    agentpm-mcp                               # Auto-discover .agentpm.json from cwd
    agentpm-mcp --project /path/to/project    # Explicit project root
    agentpm-mcp --file epic.xml               # Explicit epic file
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from agentpm.config import (
    CONFIG_FILENAME,
    Config,
    find_config,
    read_config,
    resolve_epic_path,
)
from agentpm.engine import EpicEngine
from agentpm.errors import AgentPMError
from agentpm.events import NOTE_EVENT_TYPES
from agentpm.query import DEFAULT_EVENT_LIMIT, ENTITY_KINDS, MAX_EVENT_LIMIT
from agentpm.reports import DEFAULT_HANDOFF_LIMIT

server = Server("agentpm")
engine: EpicEngine | None = None
_project_dir: Path | None = None
_logger: logging.Logger | None = None


def _get_engine() -> EpicEngine:
    if engine is None:
        msg = "Epic engine not initialized"
        raise RuntimeError(msg)
    return engine


def _text(content: Any) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_TIME_PROP = {"type": "string", "description": "ISO-8601 timestamp to record instead of now"}


def _id_tool(name: str, kind: str, description: str) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": f"{kind.capitalize()} ID"},
                "time": _TIME_PROP,
            },
            "required": ["id"],
        },
    )


def _reason_tool(name: str, description: str, *, reason_required: bool) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Test ID"},
                "reason": {"type": "string", "description": "Why (recorded on the test and in the event)"},
                "time": _TIME_PROP,
            },
            "required": ["id", "reason"] if reason_required else ["id"],
        },
    )


def _batch_tool(name: str, description: str) -> Tool:
    properties: dict[str, Any] = {
        "ids": {"type": "array", "items": {"type": "string"}, "minItems": 1, "description": "Test IDs"},
        "time": _TIME_PROP,
    }
    if name == "fail_batch":
        properties["reason"] = {"type": "string", "description": "Failure note for every test"}
    return Tool(
        name=name,
        description=description,
        inputSchema={"type": "object", "properties": properties, "required": ["ids"]},
    )


_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}}
_TIME_ONLY: dict[str, Any] = {"type": "object", "properties": {"time": _TIME_PROP}}


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return [
        Tool(name="start_epic", description="Start the epic.", inputSchema=_TIME_ONLY),
        Tool(
            name="complete_epic",
            description="Complete the epic. Requires every phase done and no failing tests.",
            inputSchema=_TIME_ONLY,
        ),
        _id_tool("start_phase", "phase", "Start a pending phase. Only one phase may be active."),
        _id_tool("complete_phase", "phase", "Complete the active phase once its tasks and tests are finished."),
        _id_tool("start_task", "task", "Start a pending task in the active phase."),
        _id_tool("complete_task", "task", "Complete the active task once its tests are finished."),
        Tool(
            name="cancel_task",
            description="Cancel a pending or active task.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Task ID"},
                    "reason": {"type": "string", "description": "Why the task is cancelled"},
                    "time": _TIME_PROP,
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="start_next",
            description="Auto-advance: start the next pending task, or complete the phase and open the next one.",
            inputSchema=_TIME_ONLY,
        ),
        _id_tool("start_test", "test", "Start running a pending test. Its task must be active or done."),
        _id_tool("pass_test", "test", "Record a pass for an in-progress test."),
        _reason_tool("fail_test", "Record a failure for an in-progress or passed test.", reason_required=True),
        _reason_tool("cancel_test", "Cancel a pending or in-progress test.", reason_required=True),
        _batch_tool("pass_batch", "Pass several tests atomically: all or none."),
        _batch_tool("fail_batch", "Fail several tests atomically: all or none."),
        Tool(
            name="log_event",
            description="Append a note event (implementation detail, blocker, decision...).",
            inputSchema={
                "type": "object",
                "properties": {
                    "message": {"type": "string", "description": "Event text"},
                    "type": {
                        "type": "string",
                        "enum": sorted(NOTE_EVENT_TYPES),
                        "default": "implementation",
                        "description": "Kind of note",
                    },
                    "time": _TIME_PROP,
                },
                "required": ["message"],
            },
        ),
        Tool(name="status", description="Overall progress of the epic.", inputSchema=_NO_ARGS),
        Tool(name="current", description="Active phase, active task and next action.", inputSchema=_NO_ARGS),
        Tool(name="pending", description="Every phase, task and test that is not done.", inputSchema=_NO_ARGS),
        Tool(name="failing", description="Failing tests with their failure notes.", inputSchema=_NO_ARGS),
        Tool(
            name="events",
            description="Most recent events, newest first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "default": DEFAULT_EVENT_LIMIT,
                        "minimum": 1,
                        "maximum": MAX_EVENT_LIMIT,
                        "description": "Number of events",
                    },
                },
            },
        ),
        Tool(
            name="show",
            description="An epic, phase, task or test with its related children.",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "enum": list(ENTITY_KINDS)},
                    "id": {"type": "string", "description": "Entity ID (not needed for epic)"},
                },
                "required": ["kind"],
            },
        ),
        Tool(
            name="handoff",
            description="Handoff report for the next agent: state, progress, blockers and recent events.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {"type": "integer", "default": DEFAULT_HANDOFF_LIMIT, "minimum": 1},
                },
            },
        ),
        Tool(name="docs", description="Markdown documentation of the epic's progress.", inputSchema=_NO_ARGS),
        Tool(
            name="validate_epic",
            description="Check the epic's structure and lifecycle invariants.",
            inputSchema=_NO_ARGS,
        ),
    ]


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    current_engine = _get_engine()
    t0 = time.monotonic()

    try:
        result = await _dispatch(name, arguments, current_engine)
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"command": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"command": name, "args_data": arguments, "duration_ms": duration_ms})
        return result


async def _dispatch(name: str, arguments: dict[str, Any], eng: EpicEngine) -> list[TextContent]:
    when = arguments.get("time")
    try:
        match name:
            case "start_epic":
                return _text(eng.start_epic(when).to_dict())
            case "complete_epic":
                return _text(eng.complete_epic(when).to_dict())
            case "start_phase":
                return _text(eng.start_phase(arguments["id"], when).to_dict())
            case "complete_phase":
                return _text(eng.complete_phase(arguments["id"], when).to_dict())
            case "start_task":
                return _text(eng.start_task(arguments["id"], when).to_dict())
            case "complete_task":
                return _text(eng.complete_task(arguments["id"], when).to_dict())
            case "cancel_task":
                return _text(eng.cancel_task(arguments["id"], arguments.get("reason", ""), when).to_dict())
            case "start_next":
                return _text(eng.start_next(when).to_dict())
            case "start_test":
                return _text(eng.start_test(arguments["id"], when).to_dict())
            case "pass_test":
                return _text(eng.pass_test(arguments["id"], when).to_dict())
            case "fail_test":
                return _text(eng.fail_test(arguments["id"], arguments.get("reason", ""), when).to_dict())
            case "cancel_test":
                return _text(eng.cancel_test(arguments["id"], arguments.get("reason", ""), when).to_dict())
            case "pass_batch":
                return _text(eng.pass_batch(list(arguments.get("ids") or []), when).to_dict())
            case "fail_batch":
                outcome = eng.fail_batch(list(arguments.get("ids") or []), arguments.get("reason", ""), when)
                return _text(outcome.to_dict())
            case "log_event":
                event = eng.log(arguments["message"], arguments.get("type", "implementation"), when)
                return _text(event.to_dict())
            case "status":
                return _text(eng.status())
            case "current":
                return _text(eng.current().to_dict())
            case "pending":
                return _text(eng.pending())
            case "failing":
                return _text(eng.failing())
            case "events":
                limit = arguments.get("limit", DEFAULT_EVENT_LIMIT)
                return _text([e.to_dict() for e in eng.events(limit)])
            case "show":
                return _text(eng.show(arguments["kind"], arguments.get("id")))
            case "handoff":
                return _text(eng.handoff(arguments.get("limit", DEFAULT_HANDOFF_LIMIT)))
            case "docs":
                return _text(eng.docs())
            case "validate_epic":
                return _text(eng.validate())
            case _:
                return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})
    except AgentPMError as e:
        return _text(e.to_dict())
    except KeyError as e:
        return _text({"error": f"Missing argument: {e.args[0]}", "code": "invalid_input"})
    except ValueError as e:
        return _text({"error": str(e), "code": "invalid_input"})


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def _load_config(project_path: Path | None) -> tuple[Path, Config]:
    if project_path:
        config_path = project_path / CONFIG_FILENAME
    else:
        try:
            config_path = find_config()
        except FileNotFoundError:
            config_path = Path.cwd() / CONFIG_FILENAME
    return config_path, read_config(config_path)


async def _run(project_path: Path | None, epic_file: Path | None = None) -> None:
    global engine, _project_dir, _logger

    config_path, config = _load_config(project_path)
    if epic_file is not None:
        epic_path = epic_file.resolve()
    elif config.current_epic:
        epic_path = resolve_epic_path(config_path, config.current_epic)
    else:
        print(
            f"Error: no current epic in {config_path}. Run 'agentpm init-project <epic.xml>' first.",
            file=sys.stderr,
        )
        sys.exit(1)

    _project_dir = config_path.parent
    engine = EpicEngine(epic_path, prerequisite_tests_block=config.prerequisite_tests_block)

    from agentpm.logging import setup_logging

    _logger = setup_logging(_project_dir)
    _logger.info("mcp_server_start", extra={"command": "server", "args_data": {"epic": str(epic_path)}})

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="agentpm MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .agentpm.json if omitted)")
    parser.add_argument("--file", type=Path, default=None, help="Epic file (overrides the configured current epic)")
    args = parser.parse_args()

    asyncio.run(_run(args.project, args.file))


if __name__ == "__main__":
    main()
