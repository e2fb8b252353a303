"""Tests for structural validation and transition pre-conditions."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from agentpm import validation
from agentpm.errors import (
    EpicCompletionBlockedError,
    InvalidPhaseStateError,
    InvalidTaskStateError,
    InvalidTestStateError,
    InvalidTransitionError,
    MissingReasonError,
    PhaseCompletionBlockedError,
    PhaseConstraintError,
    TaskCompletionBlockedError,
    TaskConstraintError,
    TestPrerequisiteError,
)
from agentpm.models import CurrentState, Epic, Event, Task
from tests._epic_factory import make_epic


class TestValidateStructure:
    def test_clean_epic(self, epic: Epic) -> None:
        assert validation.validate_structure(epic) == []

    def test_duplicate_ids(self, epic: Epic) -> None:
        epic.tasks.append(Task(id="P1_T1", phase_id="P1", name="Again"))
        assert "duplicate task id: P1_T1" in validation.validate_structure(epic)

    def test_unknown_references(self, epic: Epic) -> None:
        epic.tasks[0].phase_id = "P9"
        epic.tests[2].task_id = "missing"
        issues = validation.validate_structure(epic)
        assert "task P1_T1 references unknown phase 'P9'" in issues
        assert "test T3 references unknown task 'missing'" in issues

    def test_test_phase_must_match_task(self, epic: Epic) -> None:
        epic.tests[0].phase_id = "P2"
        issues = validation.validate_structure(epic)
        assert any("does not match task P1_T1" in i for i in issues)

    def test_invalid_status_and_result(self, epic: Epic) -> None:
        epic.phases[0].status = "cancelled"
        epic.tests[0].result = "flaky"
        issues = validation.validate_structure(epic)
        assert "phase P1 has invalid status 'cancelled'" in issues
        assert "test T1 has invalid result 'flaky'" in issues

    def test_missing_names(self) -> None:
        epic = make_epic(name="", phases=[("P1", "")], tasks=[], tests=[])
        issues = validation.validate_structure(epic)
        assert "epic name is empty" in issues
        assert "phase P1 has no name" in issues


class TestCheckInvariants:
    def test_clean_epic(self, epic: Epic) -> None:
        assert validation.check_invariants(epic) == []

    def test_two_active_phases(self, epic: Epic) -> None:
        for phase in epic.phases:
            phase.status = "wip"
        assert any("more than one active phase" in i for i in validation.check_invariants(epic))

    def test_active_task_in_pending_phase(self, epic: Epic) -> None:
        epic.tasks[0].status = "wip"
        issues = validation.check_invariants(epic)
        assert "task P1_T1 is active but phase P1 is not" in issues

    def test_done_phase_with_open_children(self, epic: Epic) -> None:
        epic.phases[0].status = "done"
        issues = validation.check_invariants(epic)
        assert "phase P1 is done but P1_T1 is pending" in issues

    def test_done_test_must_pass(self, epic: Epic) -> None:
        epic.tests[0].status = "done"
        epic.tests[0].result = "failing"
        assert "test T1 is done but not passing" in validation.check_invariants(epic)

    def test_events_out_of_order(self, epic: Epic) -> None:
        epic.events = [
            Event("e1", "epic_started", datetime(2025, 1, 2, tzinfo=UTC)),
            Event("e2", "note", datetime(2025, 1, 1, tzinfo=UTC)),
        ]
        assert "event e2 is older than the event before it" in validation.check_invariants(epic)

    def test_stale_current_state(self, epic: Epic) -> None:
        epic.current_state = CurrentState(active_phase="P1", active_task=None, next_action="x")
        assert "current state points at inactive phase 'P1'" in validation.check_invariants(epic)


class TestPhaseChecks:
    def test_start_blocked_by_active_phase(self, epic: Epic) -> None:
        epic.phases[0].status = "wip"
        with pytest.raises(PhaseConstraintError) as exc_info:
            validation.check_start_phase(epic, epic.phases[1])
        err = exc_info.value
        assert err.code == "phase_constraint_violation"
        assert err.active_phase_id == "P1"
        assert "P1" in err.hint
        assert err.details()["current_status"] == "pending"
        assert err.details()["target_status"] == "wip"

    def test_start_done_phase(self, epic: Epic) -> None:
        epic.phases[0].status = "done"
        with pytest.raises(InvalidPhaseStateError) as exc_info:
            validation.check_start_phase(epic, epic.phases[0])
        assert exc_info.value.current == "done"
        assert exc_info.value.target == "wip"

    def test_prerequisite_policy_off_by_default(self, epic: Epic) -> None:
        epic.phases[0].status = "done"
        validation.check_start_phase(epic, epic.phases[1])

    def test_prerequisite_policy_blocks_unfinished_tests(self, epic: Epic) -> None:
        epic.phases[0].status = "done"
        epic.tests[1].status = "wip"
        with pytest.raises(TestPrerequisiteError) as exc_info:
            validation.check_start_phase(epic, epic.phases[1], prerequisite_tests_block=True)
        assert [b.id for b in exc_info.value.blocking_tests] == ["T1", "T2"]
        assert exc_info.value.code == "test_prerequisite"
        assert exc_info.value.details()["current_status"] == "pending"
        assert exc_info.value.details()["target_status"] == "wip"

    def test_complete_requires_wip(self, epic: Epic) -> None:
        with pytest.raises(InvalidPhaseStateError):
            validation.check_complete_phase(epic, epic.phases[0])

    def test_complete_blocked_lists_items(self, epic: Epic) -> None:
        epic.phases[0].status = "wip"
        epic.tasks[0].status = "done"
        epic.tests[0].status = "done"
        with pytest.raises(PhaseCompletionBlockedError) as exc_info:
            validation.check_complete_phase(epic, epic.phases[0])
        err = exc_info.value
        assert [b.id for b in err.blocking_tasks] == ["P1_T2"]
        assert [b.id for b in err.blocking_tests] == ["T2"]
        details = err.to_dict()
        assert details["code"] == "phase_completion_blocked"
        assert details["current_status"] == "wip"
        assert details["target_status"] == "done"
        assert details["pending_tasks"] == 1
        assert details["unfinished_tests"] == 1
        assert {"kind": "task", "id": "P1_T2", "name": "Configure", "status": "pending"} in details["blocking_items"]

    def test_cancelled_children_do_not_block(self, epic: Epic) -> None:
        epic.phases[0].status = "wip"
        for task in epic.tasks_in_phase("P1"):
            task.status = "cancelled"
        for test in epic.tests_in_phase("P1"):
            test.status = "cancelled"
        validation.check_complete_phase(epic, epic.phases[0])


class TestTaskChecks:
    def test_start_needs_active_phase(self, epic: Epic) -> None:
        with pytest.raises(InvalidPhaseStateError) as exc_info:
            validation.check_start_task(epic, epic.tasks[0])
        assert "start-phase P1" in exc_info.value.hint

    def test_start_blocked_by_active_sibling(self, epic: Epic) -> None:
        epic.phases[0].status = "wip"
        epic.tasks[0].status = "wip"
        with pytest.raises(TaskConstraintError) as exc_info:
            validation.check_start_task(epic, epic.tasks[1])
        assert exc_info.value.active_task_id == "P1_T1"
        assert exc_info.value.details()["current_status"] == "pending"
        assert exc_info.value.details()["target_status"] == "wip"

    def test_start_cancelled_task(self, epic: Epic) -> None:
        epic.tasks[0].status = "cancelled"
        with pytest.raises(InvalidTaskStateError):
            validation.check_start_task(epic, epic.tasks[0])

    def test_complete_blocked_by_tests(self, epic: Epic) -> None:
        epic.tasks[0].status = "wip"
        with pytest.raises(TaskCompletionBlockedError) as exc_info:
            validation.check_complete_task(epic, epic.tasks[0])
        assert [b.id for b in exc_info.value.blocking_tests] == ["T1"]
        assert exc_info.value.to_dict()["current_status"] == "wip"
        assert exc_info.value.to_dict()["target_status"] == "done"

    def test_cancel_done_task(self, epic: Epic) -> None:
        epic.tasks[0].status = "done"
        with pytest.raises(InvalidTaskStateError):
            validation.check_cancel_task(epic.tasks[0])


class TestTestChecks:
    def test_start_needs_active_task(self, epic: Epic) -> None:
        epic.phases[0].status = "wip"
        with pytest.raises(InvalidTestStateError) as exc_info:
            validation.check_start_test(epic, epic.tests[0])
        assert "task P1_T1" in str(exc_info.value)

    def test_start_allowed_on_done_task(self, epic: Epic) -> None:
        epic.phases[0].status = "wip"
        epic.tasks[0].status = "done"
        validation.check_start_test(epic, epic.tests[0])

    def test_pass_requires_wip(self, epic: Epic) -> None:
        with pytest.raises(InvalidTestStateError) as exc_info:
            validation.check_pass_test(epic.tests[0])
        assert exc_info.value.code == "invalid_test_state"

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_fail_requires_reason(self, epic: Epic, reason: str) -> None:
        epic.tests[0].status = "wip"
        with pytest.raises(MissingReasonError) as exc_info:
            validation.check_fail_test(epic.tests[0], reason)
        assert exc_info.value.code == "missing_reason"

    def test_fail_allowed_from_done(self, epic: Epic) -> None:
        epic.tests[0].status = "done"
        validation.check_fail_test(epic.tests[0], "regressed")

    def test_fail_pending_rejected(self, epic: Epic) -> None:
        with pytest.raises(InvalidTestStateError):
            validation.check_fail_test(epic.tests[0], "broken")

    def test_cancel_requires_reason_first(self, epic: Epic) -> None:
        epic.tests[0].status = "done"
        with pytest.raises(MissingReasonError):
            validation.check_cancel_test(epic.tests[0], "")

    def test_cancel_done_rejected(self, epic: Epic) -> None:
        epic.tests[0].status = "done"
        with pytest.raises(InvalidTestStateError):
            validation.check_cancel_test(epic.tests[0], "obsolete")


class TestEpicChecks:
    def test_complete_requires_started(self, epic: Epic) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            validation.check_complete_epic(epic)
        assert exc_info.value.code == "invalid_transition"

    def test_complete_blocked_by_phases_and_failing_tests(self, epic: Epic) -> None:
        epic.status = "wip"
        epic.tests[0].status = "wip"
        epic.tests[0].result = "failing"
        with pytest.raises(EpicCompletionBlockedError) as exc_info:
            validation.check_complete_epic(epic)
        err = exc_info.value
        assert [b.id for b in err.blocking_phases] == ["P1", "P2"]
        assert [b.id for b in err.blocking_tests] == ["T1"]
        assert "Scaffold works" in err.hint
        assert err.details()["current_status"] == "wip"
        assert err.details()["target_status"] == "done"
