"""End-to-end scenarios through EpicEngine over in-memory storage."""

from __future__ import annotations

import pytest

from agentpm.clock import FixedClock
from agentpm.engine import EpicEngine
from agentpm.errors import BatchValidationError, EpicCompletionBlockedError, PhaseCompletionBlockedError
from agentpm.models import Epic
from agentpm.storage import MemoryStorage
from tests._epic_factory import make_epic

PATH = "scenario.xml"


def _engine(epic: Epic, storage: MemoryStorage, clock: FixedClock) -> EpicEngine:
    storage.save(epic, PATH)
    return EpicEngine(PATH, storage=storage, clock=clock)


class TestScenarios:
    def test_start_first_phase(self, storage: MemoryStorage, clock: FixedClock) -> None:
        epic = make_epic(status="wip", tasks=[("T1", "P1", "Only task")], tests=[])
        eng = _engine(epic, storage, clock)

        outcome = eng.start_phase("P1")

        assert outcome.applied
        saved = eng.load()
        assert saved.get_phase("P1").status == "wip"
        assert [e.type for e in saved.events] == ["phase_started"]
        assert saved.current_state is not None
        assert saved.current_state.active_phase == "P1"

    def test_blocked_phase_completion(self, storage: MemoryStorage, clock: FixedClock) -> None:
        epic = make_epic(
            status="wip",
            tasks=[("T1", "P1", "Done"), ("T2", "P1", "Todo"), ("T3", "P1", "Doing"), ("T4", "P2", "Later")],
            tests=[("X1", "T3", "Running")],
        )
        epic.get_phase("P1").status = "wip"
        epic.get_task("T1").status = "done"
        epic.get_task("T3").status = "wip"
        epic.get_test("X1").status = "wip"
        eng = _engine(epic, storage, clock)
        before = storage.documents[PATH]

        with pytest.raises(PhaseCompletionBlockedError) as exc_info:
            eng.complete_phase("P1")

        err = exc_info.value
        assert err.code == "phase_completion_blocked"
        assert [(b.id, b.status) for b in err.blocking_tasks] == [("T2", "pending"), ("T3", "wip")]
        assert [b.id for b in err.blocking_tests] == ["X1"]
        assert storage.documents[PATH] == before

    def test_auto_advance_across_phases(self, storage: MemoryStorage, clock: FixedClock) -> None:
        epic = make_epic(
            status="wip",
            tasks=[("T1", "P1", "First"), ("T4", "P2", "Fourth"), ("T5", "P2", "Fifth")],
            tests=[("X1", "T1", "First works")],
        )
        epic.get_phase("P1").status = "wip"
        epic.get_task("T1").status = "done"
        epic.get_test("X1").status = "done"
        eng = _engine(epic, storage, clock)

        plan = eng.start_next()

        assert (plan.phase_id, plan.task_id, plan.completed_phase_id) == ("P2", "T4", "P1")
        saved = eng.load()
        assert saved.get_phase("P1").status == "done"
        assert saved.get_phase("P2").status == "wip"
        assert saved.get_task("T4").status == "wip"
        assert saved.get_task("T5").status == "pending"
        assert [(e.type, e.data.split()[1]) for e in saved.events] == [
            ("phase_completed", "P1"),
            ("phase_started", "P2"),
            ("task_started", "T4"),
        ]

    def test_pass_fail_toggle(self, storage: MemoryStorage, clock: FixedClock) -> None:
        epic = make_epic(status="wip")
        epic.get_phase("P1").status = "wip"
        epic.get_task("P1_T1").status = "wip"
        test = epic.get_test("T1")
        test.status, test.result = "wip", "failing"
        eng = _engine(epic, storage, clock)

        eng.pass_test("T1")
        passed = eng.load().get_test("T1")
        assert (passed.status, passed.result) == ("done", "passing")

        eng.fail_test("T1", "regression")
        saved = eng.load()
        failed = saved.get_test("T1")
        assert (failed.status, failed.result, failed.failure_note) == ("wip", "failing", "regression")
        assert [e.type for e in saved.events] == ["test_passed", "test_failed"]

    def test_batch_atomicity(self, storage: MemoryStorage, clock: FixedClock) -> None:
        epic = make_epic(
            status="wip",
            tasks=[("T1", "P1", "Task")],
            tests=[("X1", "T1", "One"), ("X2", "T1", "Two"), ("X3", "T1", "Three")],
        )
        epic.get_phase("P1").status = "wip"
        epic.get_task("T1").status = "wip"
        epic.get_test("X1").status = "wip"
        epic.get_test("X3").status = "wip"
        eng = _engine(epic, storage, clock)
        before = storage.documents[PATH]

        with pytest.raises(BatchValidationError) as exc_info:
            eng.pass_batch(["X1", "X2", "X3"])

        assert exc_info.value.failed_ids == ["X2"]
        assert exc_info.value.valid_ids == ["X1", "X3"]
        assert storage.documents[PATH] == before
        assert eng.load().events == []

    def test_epic_completion_gate(self, storage: MemoryStorage, clock: FixedClock) -> None:
        epic = make_epic(
            status="wip",
            tasks=[("T1", "P1", "One"), ("T2", "P2", "Two")],
            tests=[("X6", "T1", "Fine"), ("X7", "T2", "Broken")],
        )
        for phase in epic.phases:
            phase.status = "done"
        for task in epic.tasks:
            task.status = "done"
        epic.get_test("X6").status = "done"
        broken = epic.get_test("X7")
        broken.status, broken.result = "wip", "failing"
        eng = _engine(epic, storage, clock)
        before = storage.documents[PATH]

        with pytest.raises(EpicCompletionBlockedError) as exc_info:
            eng.complete_epic()

        assert [b.id for b in exc_info.value.blocking_tests] == ["X7"]
        assert exc_info.value.blocking_phases == []
        assert storage.documents[PATH] == before


class TestWholeLifecycle:
    def test_epic_runs_to_completion(self, engine: EpicEngine) -> None:
        engine.start_epic()
        while True:
            plan = engine.start_next()
            if plan.action == "complete_epic":
                break
            task_id = plan.task_id
            assert task_id is not None
            for test in engine.load().tests_for_task(task_id):
                engine.start_test(test.id)
                engine.pass_test(test.id)
            engine.complete_task(task_id)
        engine.complete_epic()

        status = engine.status()
        assert status["status"] == "done"
        assert status["completion_percentage"] == 100
        assert engine.current().next_action == "Epic completed"
        timestamps = [e.timestamp for e in engine.load().events]
        assert timestamps == sorted(timestamps)
