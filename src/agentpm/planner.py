"""Auto-advance planner: choose and perform the single next unit of work.

Priority: keep working inside the active phase before opening a new one,
and take tasks and phases in document order. The planner never steps over
a blocking validation error; it raises it instead of advancing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from agentpm import validation
from agentpm.lifecycle import PhaseService, TaskService, Transition
from agentpm.models import Epic, Event, Phase
from agentpm.types.api import PlanDict

logger = logging.getLogger(__name__)

PlanAction = Literal["no_work", "start_task", "start_phase", "complete_epic"]


@dataclass(frozen=True)
class Plan:
    action: PlanAction
    message: str
    phase_id: str | None = None
    task_id: str | None = None
    completed_phase_id: str | None = None
    transitions: tuple[Transition, ...] = ()
    events: tuple[Event, ...] = field(default=(), compare=False)

    @property
    def applied(self) -> bool:
        return bool(self.transitions)

    def to_dict(self) -> PlanDict:
        return {
            "action": self.action,
            "phase_id": self.phase_id,
            "task_id": self.task_id,
            "completed_phase_id": self.completed_phase_id,
            "message": self.message,
            "transitions": [t.to_dict() for t in self.transitions],
        }


class AutoAdvance:
    """Runs the planner using the lifecycle services for every mutation."""

    def __init__(self, phases: PhaseService, tasks: TaskService) -> None:
        self.phases = phases
        self.tasks = tasks

    def advance(self, epic: Epic, timestamp: datetime | str | None = None) -> Plan:
        phase = epic.active_phase()
        if phase is not None:
            return self._advance_in_phase(epic, phase, timestamp)
        return self._open_next_phase(epic, timestamp, (), ())

    def _advance_in_phase(self, epic: Epic, phase: Phase, timestamp: datetime | str | None) -> Plan:
        active = epic.active_task()
        if active is not None:
            return Plan(
                "no_work",
                f"Task {active.id} ({active.name}) is already active in phase {phase.id} ({phase.name})",
                phase_id=phase.id,
                task_id=active.id,
            )

        pending = next((t for t in epic.tasks_in_phase(phase.id) if t.status == "pending"), None)
        if pending is not None:
            outcome = self.tasks.start(epic, pending.id, timestamp)
            logger.debug("auto-advance started task %s", pending.id)
            return Plan(
                "start_task",
                f"Started Task {pending.id}: {pending.name} (auto-selected)",
                phase_id=phase.id,
                task_id=pending.id,
                transitions=outcome.transitions,
                events=outcome.events,
            )

        # Raises PhaseCompletionBlockedError when tests or tasks remain.
        validation.check_complete_phase(epic, phase)
        outcome = self.phases.complete(epic, phase.id, timestamp)
        logger.debug("auto-advance completed phase %s", phase.id)
        return self._open_next_phase(
            epic,
            timestamp,
            outcome.transitions,
            outcome.events,
            completed=phase,
        )

    def _open_next_phase(
        self,
        epic: Epic,
        timestamp: datetime | str | None,
        transitions: tuple[Transition, ...],
        events: tuple[Event, ...],
        completed: Phase | None = None,
    ) -> Plan:
        completed_id = completed.id if completed else None
        prefix = f"Completed Phase {completed.id}. " if completed else ""
        upcoming = next((p for p in epic.phases if p.status == "pending"), None)

        if upcoming is None:
            failing = epic.failing_tests()
            if failing:
                names = ", ".join(t.name for t in failing[:3])
                return Plan(
                    "no_work",
                    f"{prefix}Fix failing tests before completing the epic: {names}",
                    completed_phase_id=completed_id,
                    transitions=transitions,
                    events=events,
                )
            return Plan(
                "complete_epic",
                f"{prefix}All phases and tasks completed. Epic ready for completion.",
                completed_phase_id=completed_id,
                transitions=transitions,
                events=events,
            )

        started = self.phases.start(epic, upcoming.id, timestamp)
        transitions += started.transitions
        events += started.events
        first = next((t for t in epic.tasks_in_phase(upcoming.id) if t.status == "pending"), None)
        if first is None:
            return Plan(
                "start_phase",
                f"{prefix}Started Phase {upcoming.id} (no tasks available)",
                phase_id=upcoming.id,
                completed_phase_id=completed_id,
                transitions=transitions,
                events=events,
            )

        task_outcome = self.tasks.start(epic, first.id, timestamp)
        transitions += task_outcome.transitions
        events += task_outcome.events
        return Plan(
            "start_phase",
            f"{prefix}Started Phase {upcoming.id} and Task {first.id} (auto-selected)",
            phase_id=upcoming.id,
            task_id=first.id,
            completed_phase_id=completed_id,
            transitions=transitions,
            events=events,
        )
