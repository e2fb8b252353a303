"""Epic domain model: entities, status literals and transition tables.

An epic is a pure tree. Tasks point at phases and tests point at tasks
(and phases) by id only; lookups go through the owning ``Epic``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from agentpm.clock import format_timestamp
from agentpm.errors import NotFoundError
from agentpm.types.core import (
    CurrentStateDict,
    EpicDict,
    EventDict,
    ISOTimestamp,
    PhaseDict,
    TaskDict,
    TestDict,
)

# ---------------------------------------------------------------------------
# Status literals and transition tables
# ---------------------------------------------------------------------------

EntityKind = Literal["epic", "phase", "task", "test"]
EpicStatus = Literal["pending", "wip", "done"]
PhaseStatus = Literal["pending", "wip", "done"]
TaskStatus = Literal["pending", "wip", "done", "cancelled"]
TestStatus = Literal["pending", "wip", "done", "cancelled"]
TestResult = Literal["passing", "failing"]

VALID_EPIC_STATUSES: frozenset[str] = frozenset({"pending", "wip", "done"})
VALID_PHASE_STATUSES: frozenset[str] = VALID_EPIC_STATUSES
VALID_TASK_STATUSES: frozenset[str] = frozenset({"pending", "wip", "done", "cancelled"})
VALID_TEST_STATUSES: frozenset[str] = VALID_TASK_STATUSES
VALID_TEST_RESULTS: frozenset[str] = frozenset({"passing", "failing"})

EPIC_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"wip"}),
    "wip": frozenset({"done"}),
    "done": frozenset(),
}
PHASE_TRANSITIONS: dict[str, frozenset[str]] = EPIC_TRANSITIONS
TASK_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"wip", "cancelled"}),
    "wip": frozenset({"done", "cancelled"}),
    "done": frozenset(),
    "cancelled": frozenset(),
}
TEST_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"wip", "cancelled"}),
    "wip": frozenset({"done", "cancelled"}),
    "done": frozenset({"wip"}),  # re-open as failing
    "cancelled": frozenset(),
}

_TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    "epic": EPIC_TRANSITIONS,
    "phase": PHASE_TRANSITIONS,
    "task": TASK_TRANSITIONS,
    "test": TEST_TRANSITIONS,
}
_VALID_STATUSES: dict[str, frozenset[str]] = {
    "epic": VALID_EPIC_STATUSES,
    "phase": VALID_PHASE_STATUSES,
    "task": VALID_TASK_STATUSES,
    "test": VALID_TEST_STATUSES,
}

TERMINAL_CHILD_STATUSES: frozenset[str] = frozenset({"done", "cancelled"})


def is_valid_status(kind: str, status: str) -> bool:
    return status in _VALID_STATUSES[kind]


def can_transition(kind: str, current: str, target: str) -> bool:
    """Return True if the state machine for *kind* allows current -> target."""
    return target in _TRANSITIONS[kind].get(current, frozenset())


def allowed_targets(kind: str, current: str) -> list[str]:
    return sorted(_TRANSITIONS[kind].get(current, frozenset()))


def _ts(value: datetime | None) -> ISOTimestamp | None:
    return ISOTimestamp(format_timestamp(value)) if value is not None else None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
# ``extra_attrs`` / ``extra_elements`` hold XML content the model does not
# understand, so it can be written back untouched.


@dataclass
class Phase:
    id: str
    name: str
    status: str = "pending"
    description: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    extra_attrs: dict[str, str] = field(default_factory=dict)
    extra_elements: list[str] = field(default_factory=list)

    def to_dict(self) -> PhaseDict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "description": self.description,
            "started_at": _ts(self.started_at),
            "completed_at": _ts(self.completed_at),
        }


@dataclass
class Task:
    id: str
    phase_id: str
    name: str
    status: str = "pending"
    description: str = ""
    assignee: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    extra_attrs: dict[str, str] = field(default_factory=dict)
    extra_elements: list[str] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_CHILD_STATUSES

    def to_dict(self) -> TaskDict:
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "name": self.name,
            "status": self.status,
            "description": self.description,
            "assignee": self.assignee,
            "started_at": _ts(self.started_at),
            "completed_at": _ts(self.completed_at),
            "cancelled_at": _ts(self.cancelled_at),
        }


@dataclass
class Test:
    """A verification attached to one task.

    ``status`` follows the test state machine; ``result`` is independent.
    (done, passing) is a pass, (wip, failing) is a fail. A cancelled test
    keeps whatever result it had but never counts as failing.
    """

    __test__ = False  # not a pytest class

    id: str
    task_id: str
    phase_id: str
    name: str
    status: str = "pending"
    result: str = "passing"
    description: str = ""
    started_at: datetime | None = None
    passed_at: datetime | None = None
    failed_at: datetime | None = None
    cancelled_at: datetime | None = None
    failure_note: str = ""
    cancellation_reason: str = ""
    extra_attrs: dict[str, str] = field(default_factory=dict)
    extra_elements: list[str] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_CHILD_STATUSES

    @property
    def is_failing(self) -> bool:
        return self.result == "failing" and self.status != "cancelled"

    def to_dict(self) -> TestDict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "phase_id": self.phase_id,
            "name": self.name,
            "status": self.status,
            "result": self.result,
            "description": self.description,
            "started_at": _ts(self.started_at),
            "passed_at": _ts(self.passed_at),
            "failed_at": _ts(self.failed_at),
            "cancelled_at": _ts(self.cancelled_at),
            "failure_note": self.failure_note,
            "cancellation_reason": self.cancellation_reason,
        }


@dataclass
class Event:
    id: str
    type: str
    timestamp: datetime
    data: str = ""
    extra_attrs: dict[str, str] = field(default_factory=dict)
    extra_elements: list[str] = field(default_factory=list)

    def to_dict(self) -> EventDict:
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": ISOTimestamp(format_timestamp(self.timestamp)),
            "data": self.data,
        }


@dataclass
class CurrentState:
    active_phase: str | None = None
    active_task: str | None = None
    next_action: str = ""
    failing_tests: int = 0
    extra_attrs: dict[str, str] = field(default_factory=dict)
    extra_elements: list[str] = field(default_factory=list)

    def to_dict(self) -> CurrentStateDict:
        return {
            "active_phase": self.active_phase,
            "active_task": self.active_task,
            "next_action": self.next_action,
            "failing_tests": self.failing_tests,
        }


@dataclass
class Epic:
    id: str
    name: str
    status: str = "pending"
    created_at: datetime | None = None
    description: str = ""
    assignee: str = ""
    phases: list[Phase] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    tests: list[Test] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    current_state: CurrentState | None = None
    extra_attrs: dict[str, str] = field(default_factory=dict)
    extra_elements: list[str] = field(default_factory=list)
    # Unknown attributes on the <phases>/<tasks>/<tests>/<events> wrappers.
    container_attrs: dict[str, dict[str, str]] = field(default_factory=dict)

    # -- lookups ------------------------------------------------------------

    def find_phase(self, phase_id: str) -> Phase | None:
        return next((p for p in self.phases if p.id == phase_id), None)

    def find_task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_test(self, test_id: str) -> Test | None:
        return next((t for t in self.tests if t.id == test_id), None)

    def get_phase(self, phase_id: str) -> Phase:
        phase = self.find_phase(phase_id)
        if phase is None:
            raise NotFoundError("phase", phase_id)
        return phase

    def get_task(self, task_id: str) -> Task:
        task = self.find_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def get_test(self, test_id: str) -> Test:
        test = self.find_test(test_id)
        if test is None:
            raise NotFoundError("test", test_id)
        return test

    def tasks_in_phase(self, phase_id: str) -> list[Task]:
        return [t for t in self.tasks if t.phase_id == phase_id]

    def tests_in_phase(self, phase_id: str) -> list[Test]:
        return [t for t in self.tests if t.phase_id == phase_id]

    def tests_for_task(self, task_id: str) -> list[Test]:
        return [t for t in self.tests if t.task_id == task_id]

    def active_phase(self) -> Phase | None:
        """First phase in document order with status wip."""
        return next((p for p in self.phases if p.status == "wip"), None)

    def active_task(self) -> Task | None:
        """First wip task inside the active phase."""
        phase = self.active_phase()
        if phase is None:
            return None
        return next((t for t in self.tasks_in_phase(phase.id) if t.status == "wip"), None)

    def failing_tests(self) -> list[Test]:
        return [t for t in self.tests if t.is_failing]

    def to_dict(self) -> EpicDict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "created_at": _ts(self.created_at),
            "description": self.description,
            "assignee": self.assignee,
            "phases": [p.to_dict() for p in self.phases],
            "tasks": [t.to_dict() for t in self.tasks],
            "tests": [t.to_dict() for t in self.tests],
            "events": [e.to_dict() for e in self.events],
            "current_state": self.current_state.to_dict() if self.current_state else None,
        }
