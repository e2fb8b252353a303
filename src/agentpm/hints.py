"""Context-aware hint strings attached to engine errors.

Hints are advisory: each names the command most likely to unblock the
agent. Validation code builds them here so the wording stays consistent.
"""

from __future__ import annotations

CLI_NAME = "agentpm"


def _cmd(args: str) -> str:
    return f"'{CLI_NAME} {args}'"


def see_current() -> str:
    return f"Run {_cmd('current')} to see active work"


def see_pending() -> str:
    return f"Run {_cmd('pending')} to list unfinished work"


def start_epic_first(epic_id: str) -> str:
    return f"Epic '{epic_id}' must be started first: run {_cmd('start-epic')}"


def epic_already(epic_id: str, status: str) -> str:
    return f"Epic '{epic_id}' is already {status}; run {_cmd('status')} for progress"


def complete_phase_first(active_phase_id: str, attempted_phase_id: str) -> str:
    return (
        f"Complete phase '{active_phase_id}' before starting '{attempted_phase_id}': "
        f"run {_cmd('done-phase ' + active_phase_id)}"
    )


def phase_has_unfinished_work(phase_id: str, task_count: int, test_count: int) -> str:
    parts = []
    if task_count:
        parts.append(f"{task_count} {'task' if task_count == 1 else 'tasks'}")
    if test_count:
        parts.append(f"{test_count} {'test' if test_count == 1 else 'tests'}")
    return (
        f"Phase '{phase_id}' still has {' and '.join(parts)} to finish or cancel. "
        f"Run {_cmd('pending')} to list them"
    )


def start_phase_first(phase_id: str) -> str:
    return f"Phase '{phase_id}' is not active: run {_cmd('start-phase ' + phase_id)}"


def complete_task_first(active_task_id: str, attempted_task_id: str) -> str:
    return (
        f"Only one task can be active per phase. Complete task '{active_task_id}' "
        f"before starting '{attempted_task_id}': run {_cmd('done-task ' + active_task_id)}"
    )


def start_task_first(task_id: str) -> str:
    return f"Task '{task_id}' must be active first: run {_cmd('start-task ' + task_id)}"


def finish_task_tests(task_id: str, count: int) -> str:
    return f"Task '{task_id}' has {count} unfinished test(s). Pass or cancel them with {_cmd('pass-test <id>')}"


def fix_failing_tests(names: list[str]) -> str:
    shown = ", ".join(names[:3])
    return f"Fix failing tests first ({shown}); run {_cmd('failing')} for details"


def finish_prior_tests(phase_id: str) -> str:
    return f"Finish tests in phases before '{phase_id}'; run {_cmd('failing')} or {_cmd('pending')}"


def start_test_first(test_id: str) -> str:
    return f"Test '{test_id}' must be in progress: run {_cmd('start-test ' + test_id)}"


def provide_reason(operation: str, test_id: str) -> str:
    example = _cmd(f'{operation}-test {test_id} "<reason>"')
    return f"Provide a reason, e.g. {example}"


def check_ids() -> str:
    return f"Check the ids with {_cmd('show epic')}"


def init_project() -> str:
    return f"Run {_cmd('init-project <epic.xml>')} or pass --file"
