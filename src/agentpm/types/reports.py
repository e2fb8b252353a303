"""Shapes returned by the query service and the report generators."""

from __future__ import annotations

from typing import TypedDict

from agentpm.types.core import CurrentStateDict, EventDict, ISOTimestamp, PhaseDict, TaskDict, TestDict


class StatusDict(TypedDict):
    epic_id: str
    name: str
    status: str
    completion_percentage: int
    total_phases: int
    completed_phases: int
    total_tasks: int
    completed_tasks: int
    total_tests: int
    passing_tests: int
    failing_tests: int
    active_phase: str | None
    active_task: str | None


class FailingTestDict(TypedDict):
    id: str
    phase_id: str
    task_id: str
    name: str
    failure_note: str


class PendingWorkDict(TypedDict):
    phases: list[PhaseDict]
    tasks: list[TaskDict]
    tests: list[TestDict]


class HandoffEpicInfoDict(TypedDict):
    id: str
    name: str
    status: str
    started: ISOTimestamp | None
    assignee: str


class HandoffSummaryDict(TypedDict):
    completed_phases: int
    total_phases: int
    passing_tests: int
    failing_tests: int
    completion_percentage: int


class HandoffDict(TypedDict):
    generated_at: ISOTimestamp
    epic_info: HandoffEpicInfoDict
    current_state: CurrentStateDict
    summary: HandoffSummaryDict
    recent_events: list[EventDict]
    blockers: list[str]
