"""Validation engine: structural checks and transition pre-conditions.

Structural checks return a list of human-readable issues (empty when the
epic is well formed). Transition checks raise the matching typed error
from ``agentpm.errors`` and never mutate the epic.
"""

from __future__ import annotations

from agentpm import hints
from agentpm.errors import (
    BlockingItem,
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
from agentpm.models import (
    VALID_TEST_RESULTS,
    Epic,
    Phase,
    Task,
    Test,
    can_transition,
    is_valid_status,
)

# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


def _check_ids(kind: str, ids: list[str], issues: list[str]) -> set[str]:
    seen: set[str] = set()
    for entity_id in ids:
        if not entity_id:
            issues.append(f"{kind} with empty id")
            continue
        if entity_id in seen:
            issues.append(f"duplicate {kind} id: {entity_id}")
        seen.add(entity_id)
    return seen


def validate_structure(epic: Epic) -> list[str]:
    """Referential integrity, uniqueness, required fields and enum membership."""
    issues: list[str] = []
    if not epic.id:
        issues.append("epic id is empty")
    if not epic.name:
        issues.append("epic name is empty")
    if not is_valid_status("epic", epic.status):
        issues.append(f"epic has invalid status '{epic.status}'")

    phase_ids = _check_ids("phase", [p.id for p in epic.phases], issues)
    _check_ids("task", [t.id for t in epic.tasks], issues)
    _check_ids("test", [t.id for t in epic.tests], issues)

    for phase in epic.phases:
        if not phase.name:
            issues.append(f"phase {phase.id} has no name")
        if not is_valid_status("phase", phase.status):
            issues.append(f"phase {phase.id} has invalid status '{phase.status}'")

    task_phase: dict[str, str] = {}
    for task in epic.tasks:
        task_phase[task.id] = task.phase_id
        if not task.name:
            issues.append(f"task {task.id} has no name")
        if not is_valid_status("task", task.status):
            issues.append(f"task {task.id} has invalid status '{task.status}'")
        if task.phase_id not in phase_ids:
            issues.append(f"task {task.id} references unknown phase '{task.phase_id}'")

    for test in epic.tests:
        if not test.name:
            issues.append(f"test {test.id} has no name")
        if not is_valid_status("test", test.status):
            issues.append(f"test {test.id} has invalid status '{test.status}'")
        if test.result not in VALID_TEST_RESULTS:
            issues.append(f"test {test.id} has invalid result '{test.result}'")
        if test.task_id not in task_phase:
            issues.append(f"test {test.id} references unknown task '{test.task_id}'")
        elif task_phase[test.task_id] != test.phase_id:
            issues.append(
                f"test {test.id} phase '{test.phase_id}' does not match task {test.task_id} "
                f"phase '{task_phase[test.task_id]}'"
            )

    for index, event in enumerate(epic.events):
        if not event.type:
            issues.append(f"event #{index + 1} has no type")

    return issues


def check_invariants(epic: Epic) -> list[str]:
    """Status invariants that hold for every state the services can reach.

    Hand-edited documents may violate these; they are reported, not
    enforced at load time.
    """
    issues: list[str] = []
    wip_phases = [p.id for p in epic.phases if p.status == "wip"]
    if len(wip_phases) > 1:
        issues.append(f"more than one active phase: {', '.join(wip_phases)}")

    wip_tasks = [t for t in epic.tasks if t.status == "wip"]
    if len(wip_tasks) > 1:
        issues.append(f"more than one active task: {', '.join(t.id for t in wip_tasks)}")
    phase_status = {p.id: p.status for p in epic.phases}
    for task in wip_tasks:
        if phase_status.get(task.phase_id) != "wip":
            issues.append(f"task {task.id} is active but phase {task.phase_id} is not")

    for phase in epic.phases:
        if phase.status != "done":
            continue
        for child in [*epic.tasks_in_phase(phase.id), *epic.tests_in_phase(phase.id)]:
            if not child.is_finished:
                issues.append(f"phase {phase.id} is done but {child.id} is {child.status}")
    for phase in epic.phases:
        if phase.status != "pending":
            continue
        for task in epic.tasks_in_phase(phase.id):
            if task.status in ("wip", "done"):
                issues.append(f"task {task.id} is {task.status} but phase {phase.id} is pending")

    for i in range(1, len(epic.events)):
        if epic.events[i].timestamp < epic.events[i - 1].timestamp:
            issues.append(f"event {epic.events[i].id} is older than the event before it")

    for test in epic.tests:
        if test.status == "done" and test.result != "passing":
            issues.append(f"test {test.id} is done but not passing")

    state = epic.current_state
    if state is not None:
        if state.active_phase:
            phase = epic.find_phase(state.active_phase)
            if phase is None or phase.status != "wip":
                issues.append(f"current state points at inactive phase '{state.active_phase}'")
        if state.active_task:
            task = epic.find_task(state.active_task)
            if task is None or task.status != "wip" or task.phase_id != state.active_phase:
                issues.append(f"current state points at inactive task '{state.active_task}'")
    return issues


# ---------------------------------------------------------------------------
# Transition pre-conditions
# ---------------------------------------------------------------------------


def _task_item(task: Task) -> BlockingItem:
    return BlockingItem("task", task.id, task.name, task.status)


def _test_item(test: Test) -> BlockingItem:
    return BlockingItem("test", test.id, test.name, test.status)


def _phase_item(phase: Phase) -> BlockingItem:
    return BlockingItem("phase", phase.id, phase.name, phase.status)


def check_start_epic(epic: Epic) -> None:
    if not can_transition("epic", epic.status, "wip"):
        raise InvalidTransitionError(
            "epic", epic.id, epic.name, epic.status, "wip", hint=hints.epic_already(epic.id, epic.status)
        )


def check_complete_epic(epic: Epic) -> None:
    if epic.status != "wip":
        raise InvalidTransitionError(
            "epic",
            epic.id,
            epic.name,
            epic.status,
            "done",
            f"Cannot complete epic {epic.id}: epic is {epic.status}",
            hint=hints.start_epic_first(epic.id),
        )
    blocking = [_phase_item(p) for p in epic.phases if p.status != "done"]
    failing = epic.failing_tests()
    blocking.extend(_test_item(t) for t in failing)
    if blocking:
        hint = hints.fix_failing_tests([t.name for t in failing]) if failing else hints.see_pending()
        raise EpicCompletionBlockedError(epic.id, epic.name, blocking, current=epic.status, hint=hint)


def check_start_phase(epic: Epic, phase: Phase, *, prerequisite_tests_block: bool = False) -> None:
    """A phase may start when it is pending and no other phase is active.

    Failing tests from earlier phases only block when
    ``prerequisite_tests_block`` is set.
    """
    active = next((p for p in epic.phases if p.status == "wip" and p.id != phase.id), None)
    if active is not None:
        raise PhaseConstraintError(
            phase.id, active.id, current=phase.status, hint=hints.complete_phase_first(active.id, phase.id)
        )
    if not can_transition("phase", phase.status, "wip"):
        raise InvalidPhaseStateError(
            phase.id,
            phase.name,
            phase.status,
            "wip",
            f"Cannot start phase {phase.id}: phase is {phase.status}",
            hint=hints.see_current(),
        )
    if prerequisite_tests_block:
        blocking: list[BlockingItem] = []
        for earlier in epic.phases:
            if earlier.id == phase.id:
                break
            blocking.extend(_test_item(t) for t in epic.tests_in_phase(earlier.id) if not t.is_finished)
        if blocking:
            raise TestPrerequisiteError(
                phase.id, phase.name, blocking, current=phase.status, hint=hints.finish_prior_tests(phase.id)
            )


def phase_blocking_items(epic: Epic, phase: Phase) -> list[BlockingItem]:
    blocking = [_task_item(t) for t in epic.tasks_in_phase(phase.id) if not t.is_finished]
    blocking.extend(_test_item(t) for t in epic.tests_in_phase(phase.id) if not t.is_finished)
    return blocking


def check_complete_phase(epic: Epic, phase: Phase) -> None:
    if phase.status != "wip":
        raise InvalidPhaseStateError(
            phase.id,
            phase.name,
            phase.status,
            "done",
            f"Cannot complete phase {phase.id}: phase is {phase.status}",
            hint=hints.start_phase_first(phase.id),
        )
    blocking = phase_blocking_items(epic, phase)
    if blocking:
        tasks = sum(1 for b in blocking if b.kind == "task")
        tests = len(blocking) - tasks
        raise PhaseCompletionBlockedError(
            phase.id,
            phase.name,
            blocking,
            current=phase.status,
            hint=hints.phase_has_unfinished_work(phase.id, tasks, tests),
        )


def check_start_task(epic: Epic, task: Task) -> None:
    if not can_transition("task", task.status, "wip"):
        raise InvalidTaskStateError(
            task.id,
            task.name,
            task.status,
            "wip",
            f"Cannot start task {task.id}: task is {task.status}",
            hint=hints.see_pending(),
        )
    phase = epic.get_phase(task.phase_id)
    if phase.status != "wip":
        raise InvalidPhaseStateError(
            phase.id,
            phase.name,
            phase.status,
            "wip",
            f"Cannot start task {task.id}: phase {phase.id} is not active",
            hint=hints.start_phase_first(phase.id),
        )
    active = next(
        (t for t in epic.tasks_in_phase(phase.id) if t.status == "wip" and t.id != task.id),
        None,
    )
    if active is not None:
        raise TaskConstraintError(
            task.id, active.id, current=task.status, hint=hints.complete_task_first(active.id, task.id)
        )


def check_complete_task(epic: Epic, task: Task) -> None:
    if task.status != "wip":
        raise InvalidTaskStateError(
            task.id,
            task.name,
            task.status,
            "done",
            f"Cannot complete task {task.id}: task is {task.status}",
            hint=hints.start_task_first(task.id),
        )
    blocking = [_test_item(t) for t in epic.tests_for_task(task.id) if not t.is_finished]
    if blocking:
        raise TaskCompletionBlockedError(
            task.id, task.name, blocking, current=task.status, hint=hints.finish_task_tests(task.id, len(blocking))
        )


def check_cancel_task(task: Task) -> None:
    if not can_transition("task", task.status, "cancelled"):
        raise InvalidTaskStateError(
            task.id,
            task.name,
            task.status,
            "cancelled",
            f"Cannot cancel task {task.id}: task is {task.status}",
            hint=hints.see_pending(),
        )


def check_start_test(epic: Epic, test: Test) -> None:
    if test.status != "pending":
        raise InvalidTestStateError(
            test.id,
            test.name,
            test.status,
            "wip",
            f"Cannot start test {test.id}: test is {test.status}",
            hint=hints.see_pending(),
        )
    task = epic.get_task(test.task_id)
    if task.status not in ("wip", "done"):
        raise InvalidTestStateError(
            test.id,
            test.name,
            test.status,
            "wip",
            f"Cannot start test {test.id}: task {task.id} is not active or completed (status: {task.status})",
            hint=hints.start_task_first(task.id),
        )
    phase = epic.get_phase(test.phase_id)
    if phase.status not in ("wip", "done"):
        raise InvalidTestStateError(
            test.id,
            test.name,
            test.status,
            "wip",
            f"Cannot start test {test.id}: phase {phase.id} is not active or completed (status: {phase.status})",
            hint=hints.start_phase_first(phase.id),
        )


def check_pass_test(test: Test) -> None:
    if test.status != "wip":
        raise InvalidTestStateError(
            test.id,
            test.name,
            test.status,
            "done",
            f"Cannot pass test {test.id}: test must be wip (currently {test.status})",
            hint=hints.start_test_first(test.id),
        )


def check_fail_test(test: Test, reason: str) -> None:
    if not reason or not reason.strip():
        raise MissingReasonError(test.id, "fail", hint=hints.provide_reason("fail", test.id))
    check_fail_test_state(test)


def check_fail_test_state(test: Test) -> None:
    """Failing is allowed from wip, or from done to re-open the test."""
    if test.status not in ("wip", "done"):
        raise InvalidTestStateError(
            test.id,
            test.name,
            test.status,
            "wip",
            f"Cannot fail test {test.id}: test must be wip or done (currently {test.status})",
            hint=hints.start_test_first(test.id),
        )


def check_cancel_test(test: Test, reason: str) -> None:
    if not reason or not reason.strip():
        raise MissingReasonError(test.id, "cancel", hint=hints.provide_reason("cancel", test.id))
    if not can_transition("test", test.status, "cancelled"):
        raise InvalidTestStateError(
            test.id,
            test.name,
            test.status,
            "cancelled",
            f"Cannot cancel test {test.id}: test is {test.status}",
            hint=hints.see_pending(),
        )
