"""Read-only derivations over a loaded epic.

Nothing here mutates the epic; every call builds fresh result structures.
"""

from __future__ import annotations

from typing import Any

from agentpm.models import CurrentState, Epic, Event
from agentpm.state import derive_current_state, is_consistent
from agentpm.types.reports import FailingTestDict, PendingWorkDict, StatusDict

DEFAULT_EVENT_LIMIT = 10
MAX_EVENT_LIMIT = 100

PHASE_WEIGHT = 40
TASK_WEIGHT = 40
TEST_WEIGHT = 20


def completion_percentage(epic: Epic) -> int:
    """Weighted completion: phases 40%, tasks 40%, tests 20%.

    Categories with no items are left out and the remaining weights are
    scaled up to 100. A done epic is 100. An empty epic is 100. Anything
    else that is not done stops at 99 so that 100 always means the epic
    was completed.
    """
    if epic.status == "done":
        return 100
    categories = [
        (sum(1 for p in epic.phases if p.status == "done"), len(epic.phases), PHASE_WEIGHT),
        (sum(1 for t in epic.tasks if t.status == "done"), len(epic.tasks), TASK_WEIGHT),
        (sum(1 for t in epic.tests if t.is_finished and not t.is_failing), len(epic.tests), TEST_WEIGHT),
    ]
    populated = [(done, total, weight) for done, total, weight in categories if total]
    if not populated:
        return 100
    weighted = sum(done / total * weight for done, total, weight in populated)
    weighted = weighted * 100 / sum(weight for _, _, weight in populated)
    return min(int(weighted), 99)


def status(epic: Epic) -> StatusDict:
    phase = epic.active_phase()
    task = epic.active_task()
    failing = len(epic.failing_tests())
    return {
        "epic_id": epic.id,
        "name": epic.name,
        "status": epic.status,
        "completion_percentage": completion_percentage(epic),
        "total_phases": len(epic.phases),
        "completed_phases": sum(1 for p in epic.phases if p.status == "done"),
        "total_tasks": len(epic.tasks),
        "completed_tasks": sum(1 for t in epic.tasks if t.status == "done"),
        "total_tests": len(epic.tests),
        "passing_tests": sum(1 for t in epic.tests if t.status == "done" and t.result == "passing"),
        "failing_tests": failing,
        "active_phase": phase.id if phase else None,
        "active_task": task.id if task else None,
    }


def current_state(epic: Epic) -> CurrentState:
    """The stored pointer, or a recomputed one when missing or stale."""
    stored = epic.current_state
    if stored is not None and is_consistent(epic, stored):
        return CurrentState(
            active_phase=stored.active_phase,
            active_task=stored.active_task,
            next_action=stored.next_action,
            failing_tests=len(epic.failing_tests()),
        )
    return derive_current_state(epic)


def pending_work(epic: Epic) -> PendingWorkDict:
    """Every phase, task and test whose status is not done."""
    return {
        "phases": [p.to_dict() for p in epic.phases if p.status != "done"],
        "tasks": [t.to_dict() for t in epic.tasks if t.status != "done"],
        "tests": [t.to_dict() for t in epic.tests if t.status != "done"],
    }


def failing_tests(epic: Epic) -> list[FailingTestDict]:
    return [
        {
            "id": t.id,
            "phase_id": t.phase_id,
            "task_id": t.task_id,
            "name": t.name,
            "failure_note": t.failure_note,
        }
        for t in epic.failing_tests()
    ]


def recent_events(epic: Epic, limit: int = DEFAULT_EVENT_LIMIT) -> list[Event]:
    """Events newest first, capped at ``limit`` (clamped to 1..100).

    Ties keep the later-appended event first.
    """
    limit = max(1, min(limit, MAX_EVENT_LIMIT))
    ordered = sorted(enumerate(epic.events), key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
    return [event for _, event in ordered[:limit]]


ENTITY_KINDS = ("epic", "phase", "task", "test")


def entity_details(epic: Epic, kind: str, entity_id: str | None = None) -> dict[str, Any]:
    """One entity with its related children, for ``agentpm show``."""
    if kind == "epic":
        return {
            **epic.to_dict(),
            "completion_percentage": completion_percentage(epic),
            "current_state": current_state(epic).to_dict(),
        }
    if kind not in ENTITY_KINDS:
        msg = f"Unknown entity type '{kind}'. Valid types: {', '.join(ENTITY_KINDS)}"
        raise ValueError(msg)
    if not entity_id:
        msg = f"An id is required to show a {kind}"
        raise ValueError(msg)
    if kind == "phase":
        phase = epic.get_phase(entity_id)
        return {
            **phase.to_dict(),
            "tasks": [t.to_dict() for t in epic.tasks_in_phase(phase.id)],
            "tests": [t.to_dict() for t in epic.tests_in_phase(phase.id)],
        }
    if kind == "task":
        task = epic.get_task(entity_id)
        return {**task.to_dict(), "tests": [t.to_dict() for t in epic.tests_for_task(task.id)]}
    test = epic.get_test(entity_id)
    return dict(test.to_dict())
