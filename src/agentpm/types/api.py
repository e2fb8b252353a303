"""Response shapes shared by the CLI --json output and the MCP tools."""

from __future__ import annotations

from typing import NotRequired, TypedDict

from agentpm.types.core import ISOTimestamp


class ErrorResponse(TypedDict):
    """Uniform error envelope: ``{"error": ..., "code": ...}``."""

    error: str
    code: str
    hint: NotRequired[str]


class BlockingItemDict(TypedDict):
    kind: str
    id: str
    name: str
    status: str


class BatchFailureDict(TypedDict):
    id: str
    error: str
    code: str


class TransitionDict(TypedDict):
    kind: str
    id: str
    previous_status: str
    new_status: str
    timestamp: ISOTimestamp
    summary: str
    event_written: bool


class OutcomeDict(TypedDict):
    """Result of a lifecycle operation (applied or friendly no-op)."""

    applied: bool
    kind: str
    id: str
    status: str
    message: str
    transitions: list[TransitionDict]


class PlanDict(TypedDict):
    action: str
    phase_id: str | None
    task_id: str | None
    completed_phase_id: str | None
    message: str
    transitions: list[TransitionDict]
