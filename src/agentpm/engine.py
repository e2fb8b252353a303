"""EpicEngine: the single entry point the CLI and MCP server talk to.

Wraps the lifecycle services, planner and queries around one epic file.
Every mutating call is one commit: load, validate and mutate in memory,
then save only if something changed. A raised error leaves the file
untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from agentpm import query, reports
from agentpm.clock import Clock, SystemClock
from agentpm.errors import EpicValidationError
from agentpm.lifecycle import EpicService, NoteService, Outcome, PhaseService, TaskService, TestService
from agentpm.models import CurrentState, Epic, Event
from agentpm.planner import AutoAdvance, Plan
from agentpm.storage import FileStorage, Storage
from agentpm.types.reports import FailingTestDict, HandoffDict, PendingWorkDict, StatusDict
from agentpm.validation import check_invariants

logger = logging.getLogger(__name__)

T = TypeVar("T")

Timestamp = datetime | str | None


class EpicEngine:
    def __init__(
        self,
        path: str | Path,
        storage: Storage | None = None,
        clock: Clock | None = None,
        *,
        prerequisite_tests_block: bool = False,
    ) -> None:
        self.path = str(path)
        self.storage: Storage = storage or FileStorage()
        self.clock: Clock = clock or SystemClock()
        self.epics = EpicService(self.clock)
        self.phases = PhaseService(self.clock, prerequisite_tests_block=prerequisite_tests_block)
        self.tasks = TaskService(self.clock)
        self.tests = TestService(self.clock)
        self.notes = NoteService(self.clock)
        self.planner = AutoAdvance(self.phases, self.tasks)

    # -- plumbing -----------------------------------------------------------

    def load(self) -> Epic:
        return self.storage.load(self.path)

    def _commit(self, operation: str, apply: Callable[[Epic], T]) -> T:
        epic = self.load()
        result = apply(epic)
        if getattr(result, "applied", True):
            self.storage.save(epic, self.path)
            logger.info("%s applied to %s", operation, self.path)
        else:
            logger.info("%s was a no-op on %s", operation, self.path)
        return result

    # -- epic ---------------------------------------------------------------

    def start_epic(self, timestamp: Timestamp = None) -> Outcome:
        return self._commit("start-epic", lambda e: self.epics.start(e, timestamp))

    def complete_epic(self, timestamp: Timestamp = None) -> Outcome:
        return self._commit("done-epic", lambda e: self.epics.complete(e, timestamp))

    # -- phases and tasks ---------------------------------------------------

    def start_phase(self, phase_id: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("start-phase", lambda e: self.phases.start(e, phase_id, timestamp))

    def complete_phase(self, phase_id: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("done-phase", lambda e: self.phases.complete(e, phase_id, timestamp))

    def start_task(self, task_id: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("start-task", lambda e: self.tasks.start(e, task_id, timestamp))

    def complete_task(self, task_id: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("done-task", lambda e: self.tasks.complete(e, task_id, timestamp))

    def cancel_task(self, task_id: str, reason: str = "", timestamp: Timestamp = None) -> Outcome:
        return self._commit("cancel-task", lambda e: self.tasks.cancel(e, task_id, reason, timestamp))

    def start_next(self, timestamp: Timestamp = None) -> Plan:
        return self._commit("start-next", lambda e: self.planner.advance(e, timestamp))

    # -- tests --------------------------------------------------------------

    def start_test(self, test_id: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("start-test", lambda e: self.tests.start(e, test_id, timestamp))

    def pass_test(self, test_id: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("pass-test", lambda e: self.tests.pass_(e, test_id, timestamp))

    def fail_test(self, test_id: str, reason: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("fail-test", lambda e: self.tests.fail(e, test_id, reason, timestamp))

    def cancel_test(self, test_id: str, reason: str, timestamp: Timestamp = None) -> Outcome:
        return self._commit("cancel-test", lambda e: self.tests.cancel(e, test_id, reason, timestamp))

    def pass_batch(self, test_ids: list[str], timestamp: Timestamp = None) -> Outcome:
        return self._commit("pass-batch", lambda e: self.tests.pass_batch(e, test_ids, timestamp))

    def fail_batch(self, test_ids: list[str], reason: str = "", timestamp: Timestamp = None) -> Outcome:
        return self._commit("fail-batch", lambda e: self.tests.fail_batch(e, test_ids, reason, timestamp))

    # -- notes --------------------------------------------------------------

    def log(self, message: str, event_type: str = "implementation", timestamp: Timestamp = None) -> Event:
        return self._commit("log", lambda e: self.notes.log(e, message, event_type, timestamp))

    # -- queries ------------------------------------------------------------

    def status(self) -> StatusDict:
        return query.status(self.load())

    def current(self) -> CurrentState:
        return query.current_state(self.load())

    def pending(self) -> PendingWorkDict:
        return query.pending_work(self.load())

    def failing(self) -> list[FailingTestDict]:
        return query.failing_tests(self.load())

    def events(self, limit: int = query.DEFAULT_EVENT_LIMIT) -> list[Event]:
        return query.recent_events(self.load(), limit)

    def validate(self) -> dict[str, Any]:
        """Structural issues make the epic invalid; invariant breaches are warnings."""
        try:
            epic = self.load()
        except EpicValidationError as exc:
            return {"valid": False, "epic_id": None, "issues": exc.issues, "warnings": []}
        return {
            "valid": True,
            "epic_id": epic.id,
            "issues": [],
            "warnings": check_invariants(epic),
        }

    # -- reports ------------------------------------------------------------

    def handoff(self, limit: int = reports.DEFAULT_HANDOFF_LIMIT) -> HandoffDict:
        return reports.build_handoff(self.load(), self.clock.now(), limit)

    def docs(self) -> str:
        return reports.generate_docs(self.load(), self.clock.now())

    def show(self, kind: str, entity_id: str | None = None) -> dict[str, Any]:
        return query.entity_details(self.load(), kind, entity_id)
