"""Derivation of the CurrentState pointer from per-entity statuses.

The persisted ``<current_state>`` is only a cache. These helpers rebuild
it from the phases, tasks and tests whenever it is missing or disagrees
with them.
"""

from __future__ import annotations

from agentpm.models import CurrentState, Epic


def derive_next_action(epic: Epic) -> str:
    """Pick the next action, first matching rule wins.

    1. failing tests: ``Fix failing tests: <first three names>``
    2. active task: ``Continue work on: <name>``
    3. pending task in the active phase: ``Start next task: <name>``
    4. pending phase: ``Start next phase: <name>``
    5. otherwise: ``Epic ready for completion``
    """
    failing = epic.failing_tests()
    if failing:
        return "Fix failing tests: " + ", ".join(t.name for t in failing[:3])
    task = epic.active_task()
    if task is not None:
        return f"Continue work on: {task.name}"
    phase = epic.active_phase()
    if phase is not None:
        pending = next((t for t in epic.tasks_in_phase(phase.id) if t.status == "pending"), None)
        if pending is not None:
            return f"Start next task: {pending.name}"
    next_phase = next((p for p in epic.phases if p.status == "pending"), None)
    if next_phase is not None:
        return f"Start next phase: {next_phase.name}"
    return "Epic ready for completion"


def derive_current_state(epic: Epic) -> CurrentState:
    phase = epic.active_phase()
    task = epic.active_task()
    return CurrentState(
        active_phase=phase.id if phase else None,
        active_task=task.id if task else None,
        next_action=derive_next_action(epic),
        failing_tests=len(epic.failing_tests()),
    )


def is_consistent(epic: Epic, state: CurrentState) -> bool:
    """True when the stored pointers match what the statuses say."""
    derived = derive_current_state(epic)
    return (
        state.active_phase == derived.active_phase
        and state.active_task == derived.active_task
        and bool(state.next_action)
    )


def refresh_current_state(epic: Epic, next_action: str = "") -> CurrentState:
    """Replace ``epic.current_state`` with a freshly derived value.

    ``next_action`` overrides the derived text when given. Unknown XML
    content carried by the previous value is kept.
    """
    state = derive_current_state(epic)
    if next_action:
        state.next_action = next_action
    if epic.current_state is not None:
        state.extra_attrs = epic.current_state.extra_attrs
        state.extra_elements = epic.current_state.extra_elements
    epic.current_state = state
    return state
