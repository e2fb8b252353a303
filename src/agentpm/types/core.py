"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class AgentPMConfigDict(TypedDict, total=False):
    """Shape of .agentpm.json."""

    current_epic: str
    previous_epic: str
    project_name: str
    default_assignee: str
    prerequisite_tests_block: bool


class PhaseDict(TypedDict):
    id: str
    name: str
    status: str
    description: str
    started_at: ISOTimestamp | None
    completed_at: ISOTimestamp | None


class TaskDict(TypedDict):
    id: str
    phase_id: str
    name: str
    status: str
    description: str
    assignee: str
    started_at: ISOTimestamp | None
    completed_at: ISOTimestamp | None
    cancelled_at: ISOTimestamp | None


class TestDict(TypedDict):
    id: str
    task_id: str
    phase_id: str
    name: str
    status: str
    result: str
    description: str
    started_at: ISOTimestamp | None
    passed_at: ISOTimestamp | None
    failed_at: ISOTimestamp | None
    cancelled_at: ISOTimestamp | None
    failure_note: str
    cancellation_reason: str


class EventDict(TypedDict):
    id: str
    type: str
    timestamp: ISOTimestamp
    data: str


class CurrentStateDict(TypedDict):
    active_phase: str | None
    active_task: str | None
    next_action: str
    failing_tests: int


class EpicDict(TypedDict):
    id: str
    name: str
    status: str
    created_at: ISOTimestamp | None
    description: str
    assignee: str
    phases: list[PhaseDict]
    tasks: list[TaskDict]
    tests: list[TestDict]
    events: list[EventDict]
    current_state: CurrentStateDict | None


class XMLRepairDict(TypedDict):
    line: int
    description: str
