"""Fixtures for core service tests."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from agentpm.clock import FixedClock
from agentpm.lifecycle import EpicService, NoteService, PhaseService, TaskService, TestService
from agentpm.models import Epic
from agentpm.planner import AutoAdvance


@dataclass
class Services:
    epics: EpicService
    phases: PhaseService
    tasks: TaskService
    tests: TestService
    notes: NoteService
    planner: AutoAdvance


@pytest.fixture
def svc(clock: FixedClock) -> Services:
    phases = PhaseService(clock)
    tasks = TaskService(clock)
    return Services(
        epics=EpicService(clock),
        phases=phases,
        tasks=tasks,
        tests=TestService(clock),
        notes=NoteService(clock),
        planner=AutoAdvance(phases, tasks),
    )


@pytest.fixture
def working_epic(epic: Epic, svc: Services) -> Epic:
    """Epic started with P1 and P1_T1 active."""
    svc.epics.start(epic)
    svc.phases.start(epic, "P1")
    svc.tasks.start(epic, "P1_T1")
    return epic
