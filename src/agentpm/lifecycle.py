"""Lifecycle services for epics, phases, tasks and tests.

Each service operates on a loaded ``Epic`` in place: it resolves the
target, runs the validation engine, mutates status and timestamps,
appends an event, and refreshes the current-state pointer. Nothing is
mutated unless every check has passed first.

Operations return an ``Outcome``: ``Applied`` when the epic changed, or
``NoOp`` when the request repeated the current state (start on an active
entity, complete on a done one). Failures raise the typed errors from
``agentpm.errors``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from agentpm import validation
from agentpm.clock import Clock, SystemClock, format_timestamp, resolve_timestamp
from agentpm.errors import AgentPMError, BatchValidationError
from agentpm.events import describe, describe_batch, last_event_time, record_event
from agentpm.models import Epic, Event, Test
from agentpm.state import refresh_current_state
from agentpm.types.api import OutcomeDict, TransitionDict
from agentpm.types.core import ISOTimestamp

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    kind: str
    id: str
    previous_status: str
    new_status: str
    timestamp: datetime
    summary: str = ""
    event_written: bool = True

    def to_dict(self) -> TransitionDict:
        return {
            "kind": self.kind,
            "id": self.id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "timestamp": ISOTimestamp(format_timestamp(self.timestamp)),
            "summary": self.summary,
            "event_written": self.event_written,
        }


@dataclass(frozen=True)
class Applied:
    """The epic was mutated; ``transitions`` lists every state change in order."""

    kind: str
    id: str
    status: str
    message: str
    transitions: tuple[Transition, ...] = ()
    events: tuple[Event, ...] = field(default=(), compare=False)

    applied = True

    def to_dict(self) -> OutcomeDict:
        return {
            "applied": True,
            "kind": self.kind,
            "id": self.id,
            "status": self.status,
            "message": self.message,
            "transitions": [t.to_dict() for t in self.transitions],
        }


@dataclass(frozen=True)
class NoOp:
    """Friendly success: the entity is already in the requested state."""

    kind: str
    id: str
    status: str
    message: str

    applied = False

    @property
    def transitions(self) -> tuple[Transition, ...]:
        return ()

    @property
    def events(self) -> tuple[Event, ...]:
        return ()

    def to_dict(self) -> OutcomeDict:
        return {
            "applied": False,
            "kind": self.kind,
            "id": self.id,
            "status": self.status,
            "message": self.message,
            "transitions": [],
        }


Outcome = Applied | NoOp


def _already(kind: str, entity_id: str, what: str) -> str:
    return f"{kind.capitalize()} '{entity_id}' is already {what}. No action needed."


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


class _Service:
    def __init__(self, clock: Clock | None = None) -> None:
        self.clock: Clock = clock or SystemClock()

    def _timestamp(self, epic: Epic, timestamp: datetime | str | None) -> datetime:
        """Resolve the operation time, never earlier than the last event."""
        ts = resolve_timestamp(self.clock, timestamp)
        last = last_event_time(epic)
        if last is not None and ts < last:
            logger.warning(
                "Timestamp %s precedes last event %s; using the latter",
                format_timestamp(ts),
                format_timestamp(last),
            )
            return last
        return ts


class EpicService(_Service):
    def start(self, epic: Epic, timestamp: datetime | str | None = None) -> Outcome:
        if epic.status == "wip":
            return NoOp("epic", epic.id, epic.status, _already("epic", epic.id, "started"))
        if epic.status == "done":
            return NoOp("epic", epic.id, epic.status, _already("epic", epic.id, "completed"))
        validation.check_start_epic(epic)
        ts = self._timestamp(epic, timestamp)
        previous = epic.status
        epic.status = "wip"
        event = record_event(epic, "epic_started", describe(epic, "started"), ts)
        refresh_current_state(epic)
        logger.debug("epic %s started", epic.id)
        return Applied(
            "epic",
            epic.id,
            epic.status,
            event.data,
            (Transition("epic", epic.id, previous, "wip", ts, event.data),),
            (event,),
        )

    def complete(self, epic: Epic, timestamp: datetime | str | None = None) -> Outcome:
        if epic.status == "done":
            return NoOp("epic", epic.id, epic.status, _already("epic", epic.id, "completed"))
        validation.check_complete_epic(epic)
        ts = self._timestamp(epic, timestamp)
        epic.status = "done"
        event = record_event(epic, "epic_completed", describe(epic, "completed"), ts)
        refresh_current_state(epic, "Epic completed")
        logger.debug("epic %s completed", epic.id)
        return Applied(
            "epic",
            epic.id,
            epic.status,
            event.data,
            (Transition("epic", epic.id, "wip", "done", ts, event.data),),
            (event,),
        )


class PhaseService(_Service):
    def __init__(self, clock: Clock | None = None, *, prerequisite_tests_block: bool = False) -> None:
        super().__init__(clock)
        self.prerequisite_tests_block = prerequisite_tests_block

    def start(self, epic: Epic, phase_id: str, timestamp: datetime | str | None = None) -> Outcome:
        phase = epic.get_phase(phase_id)
        if phase.status == "wip":
            return NoOp("phase", phase.id, phase.status, _already("phase", phase.id, "active"))
        validation.check_start_phase(epic, phase, prerequisite_tests_block=self.prerequisite_tests_block)
        ts = self._timestamp(epic, timestamp)
        phase.status = "wip"
        phase.started_at = ts
        event = record_event(epic, "phase_started", describe(phase, "started"), ts)
        refresh_current_state(epic)
        return Applied(
            "phase",
            phase.id,
            phase.status,
            event.data,
            (Transition("phase", phase.id, "pending", "wip", ts, event.data),),
            (event,),
        )

    def complete(self, epic: Epic, phase_id: str, timestamp: datetime | str | None = None) -> Outcome:
        phase = epic.get_phase(phase_id)
        if phase.status == "done":
            return NoOp("phase", phase.id, phase.status, _already("phase", phase.id, "completed"))
        validation.check_complete_phase(epic, phase)
        ts = self._timestamp(epic, timestamp)
        phase.status = "done"
        phase.completed_at = ts
        event = record_event(epic, "phase_completed", describe(phase, "completed"), ts)
        upcoming = next((p for p in epic.phases if p.status == "pending"), None)
        refresh_current_state(
            epic, f"Start next phase: {upcoming.name}" if upcoming else "Epic ready for completion"
        )
        return Applied(
            "phase",
            phase.id,
            phase.status,
            event.data,
            (Transition("phase", phase.id, "wip", "done", ts, event.data),),
            (event,),
        )


class TaskService(_Service):
    def start(self, epic: Epic, task_id: str, timestamp: datetime | str | None = None) -> Outcome:
        task = epic.get_task(task_id)
        if task.status == "wip":
            return NoOp("task", task.id, task.status, _already("task", task.id, "active"))
        validation.check_start_task(epic, task)
        ts = self._timestamp(epic, timestamp)
        task.status = "wip"
        task.started_at = ts
        event = record_event(epic, "task_started", describe(task, "started"), ts)
        refresh_current_state(epic)
        return Applied(
            "task",
            task.id,
            task.status,
            event.data,
            (Transition("task", task.id, "pending", "wip", ts, event.data),),
            (event,),
        )

    def complete(self, epic: Epic, task_id: str, timestamp: datetime | str | None = None) -> Outcome:
        task = epic.get_task(task_id)
        if task.status == "done":
            return NoOp("task", task.id, task.status, _already("task", task.id, "completed"))
        validation.check_complete_task(epic, task)
        ts = self._timestamp(epic, timestamp)
        task.status = "done"
        task.completed_at = ts
        event = record_event(epic, "task_completed", describe(task, "completed"), ts)
        sibling = next((t for t in epic.tasks_in_phase(task.phase_id) if t.status == "pending"), None)
        refresh_current_state(epic, f"Start next task: {sibling.name}" if sibling else "Complete current phase")
        return Applied(
            "task",
            task.id,
            task.status,
            event.data,
            (Transition("task", task.id, "wip", "done", ts, event.data),),
            (event,),
        )

    def cancel(self, epic: Epic, task_id: str, reason: str = "", timestamp: datetime | str | None = None) -> Outcome:
        task = epic.get_task(task_id)
        validation.check_cancel_task(task)
        ts = self._timestamp(epic, timestamp)
        previous = task.status
        task.status = "cancelled"
        task.cancelled_at = ts
        event = record_event(epic, "task_cancelled", describe(task, "cancelled", reason.strip()), ts)
        refresh_current_state(epic)
        return Applied(
            "task",
            task.id,
            task.status,
            event.data,
            (Transition("task", task.id, previous, "cancelled", ts, event.data),),
            (event,),
        )


class TestService(_Service):
    """Test operations. ``status`` and ``result`` always move together."""

    __test__ = False  # not a pytest class

    def start(self, epic: Epic, test_id: str, timestamp: datetime | str | None = None) -> Outcome:
        test = epic.get_test(test_id)
        if test.status == "wip":
            return NoOp("test", test.id, test.status, _already("test", test.id, "started"))
        validation.check_start_test(epic, test)
        ts = self._timestamp(epic, timestamp)
        test.status = "wip"
        test.started_at = ts
        event = record_event(epic, "test_started", describe(test, "started"), ts)
        refresh_current_state(epic)
        return self._applied(test, "pending", ts, event)

    def pass_(self, epic: Epic, test_id: str, timestamp: datetime | str | None = None) -> Outcome:
        test = epic.get_test(test_id)
        validation.check_pass_test(test)
        ts = self._timestamp(epic, timestamp)
        previous = self._mark_passed(test, ts)
        event = record_event(epic, "test_passed", describe(test, "passed"), ts)
        refresh_current_state(epic)
        return self._applied(test, previous, ts, event)

    def fail(self, epic: Epic, test_id: str, reason: str, timestamp: datetime | str | None = None) -> Outcome:
        test = epic.get_test(test_id)
        validation.check_fail_test(test, reason)
        ts = self._timestamp(epic, timestamp)
        previous = self._mark_failed(test, reason.strip(), ts)
        event = record_event(epic, "test_failed", describe(test, "failed", test.failure_note), ts)
        refresh_current_state(epic)
        return self._applied(test, previous, ts, event)

    def cancel(self, epic: Epic, test_id: str, reason: str, timestamp: datetime | str | None = None) -> Outcome:
        test = epic.get_test(test_id)
        validation.check_cancel_test(test, reason)
        ts = self._timestamp(epic, timestamp)
        previous = test.status
        test.status = "cancelled"
        test.result = "failing"
        test.cancelled_at = ts
        test.cancellation_reason = reason.strip()
        event = record_event(epic, "test_cancelled", describe(test, "cancelled", test.cancellation_reason), ts)
        refresh_current_state(epic)
        return self._applied(test, previous, ts, event)

    # -- batch --------------------------------------------------------------

    def pass_batch(self, epic: Epic, test_ids: list[str], timestamp: datetime | str | None = None) -> Outcome:
        """Pass every test or none of them; one aggregated event."""
        tests = self._prevalidate(epic, test_ids, "pass", validation.check_pass_test)
        ts = self._timestamp(epic, timestamp)
        transitions = []
        for test in tests:
            previous = self._mark_passed(test, ts)
            transitions.append(Transition("test", test.id, previous, test.status, ts, describe(test, "passed")))
        event = record_event(epic, "test_batch_passed", describe_batch("passed", tests), ts)
        refresh_current_state(epic)
        return Applied("test", ",".join(t.id for t in tests), "done", event.data, tuple(transitions), (event,))

    def fail_batch(
        self,
        epic: Epic,
        test_ids: list[str],
        reason: str = "",
        timestamp: datetime | str | None = None,
    ) -> Outcome:
        """Fail every test or none of them; the reason is optional here."""
        tests = self._prevalidate(epic, test_ids, "fail", validation.check_fail_test_state)
        ts = self._timestamp(epic, timestamp)
        note = reason.strip()
        transitions = []
        for test in tests:
            previous = self._mark_failed(test, note, ts)
            transitions.append(Transition("test", test.id, previous, test.status, ts, describe(test, "failed", note)))
        event = record_event(epic, "test_batch_failed", describe_batch("failed", tests, note), ts)
        refresh_current_state(epic)
        return Applied("test", ",".join(t.id for t in tests), "wip", event.data, tuple(transitions), (event,))

    def _prevalidate(
        self, epic: Epic, test_ids: list[str], operation: str, check: Callable[[Test], None]
    ) -> list[Test]:
        ids = list(dict.fromkeys(i for i in test_ids if i))
        if not ids:
            raise BatchValidationError(operation, [], [])
        failures: list[AgentPMError] = []
        valid: list[Test] = []
        for test_id in ids:
            try:
                test = epic.get_test(test_id)
                check(test)
            except AgentPMError as exc:
                failures.append(exc)
            else:
                valid.append(test)
        if failures:
            raise BatchValidationError(operation, failures, [t.id for t in valid], hint="No tests were modified")
        return valid

    # -- mutation helpers ---------------------------------------------------

    @staticmethod
    def _mark_passed(test: Test, ts: datetime) -> str:
        previous = test.status
        test.status = "done"
        test.result = "passing"
        test.passed_at = ts
        return previous

    @staticmethod
    def _mark_failed(test: Test, note: str, ts: datetime) -> str:
        previous = test.status
        test.status = "wip"
        test.result = "failing"
        test.failed_at = ts
        test.failure_note = note
        return previous

    @staticmethod
    def _applied(test: Test, previous: str, ts: datetime, event: Event) -> Applied:
        return Applied(
            "test",
            test.id,
            test.status,
            event.data,
            (Transition("test", test.id, previous, test.status, ts, event.data),),
            (event,),
        )


class NoteService(_Service):
    """Free-form entries (``agentpm log``): implementation notes, blockers, decisions."""

    def log(
        self,
        epic: Epic,
        message: str,
        event_type: str = "implementation",
        timestamp: datetime | str | None = None,
    ) -> Event:
        if not message.strip():
            raise ValueError("Event message must not be empty")
        return record_event(epic, event_type, message.strip(), self._timestamp(epic, timestamp))
