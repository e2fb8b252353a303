"""Typed error taxonomy for the epic engine.

Every error carries a stable ``code`` used by tests, the CLI ``--json``
output and the MCP tools, plus an optional advisory ``hint``. The hint is
never part of the error's identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from agentpm.types.api import BatchFailureDict, BlockingItemDict


@dataclass(frozen=True)
class BlockingItem:
    """A child entity whose status prevents its parent from transitioning."""

    kind: str
    id: str
    name: str
    status: str

    def to_dict(self) -> BlockingItemDict:
        return {"kind": self.kind, "id": self.id, "name": self.name, "status": self.status}


class AgentPMError(ValueError):
    """Base class for all typed engine errors."""

    code = "error"

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message

    def details(self) -> dict[str, Any]:
        """Structured fields specific to the error kind."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.hint:
            data["hint"] = self.hint
        data.update(self.details())
        return data


class NotFoundError(AgentPMError, KeyError):
    code = "not_found"

    def __init__(self, kind: str, entity_id: str, *, hint: str = "") -> None:
        super().__init__(f"{kind.capitalize()} {entity_id} not found", hint=hint)
        self.kind = kind
        self.entity_id = entity_id

    def details(self) -> dict[str, Any]:
        return {"kind": self.kind, "id": self.entity_id}


# ---------------------------------------------------------------------------
# State machine violations
# ---------------------------------------------------------------------------


class InvalidTransitionError(AgentPMError):
    """The state machine rejects current -> target for this entity."""

    code = "invalid_transition"

    def __init__(
        self,
        kind: str,
        entity_id: str,
        name: str,
        current: str,
        target: str,
        message: str = "",
        *,
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Cannot transition {kind} {entity_id} from '{current}' to '{target}'"
        super().__init__(message, hint=hint)
        self.kind = kind
        self.entity_id = entity_id
        self.name = name
        self.current = current
        self.target = target

    def details(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.entity_id,
            "name": self.name,
            "current_status": self.current,
            "target_status": self.target,
        }


class InvalidPhaseStateError(InvalidTransitionError):
    code = "invalid_phase_state"

    def __init__(
        self, entity_id: str, name: str, current: str, target: str, message: str = "", *, hint: str = ""
    ) -> None:
        super().__init__("phase", entity_id, name, current, target, message, hint=hint)


class InvalidTaskStateError(InvalidTransitionError):
    code = "invalid_task_state"

    def __init__(
        self, entity_id: str, name: str, current: str, target: str, message: str = "", *, hint: str = ""
    ) -> None:
        super().__init__("task", entity_id, name, current, target, message, hint=hint)


class InvalidTestStateError(InvalidTransitionError):
    code = "invalid_test_state"

    def __init__(
        self, entity_id: str, name: str, current: str, target: str, message: str = "", *, hint: str = ""
    ) -> None:
        super().__init__("test", entity_id, name, current, target, message, hint=hint)


class PhaseConstraintError(AgentPMError):
    """A phase cannot start while another phase is wip."""

    code = "phase_constraint_violation"

    def __init__(
        self, phase_id: str, active_phase_id: str, *, current: str, target: str = "wip", hint: str = ""
    ) -> None:
        super().__init__(
            f"Cannot start phase {phase_id}: phase {active_phase_id} is already active",
            hint=hint,
        )
        self.phase_id = phase_id
        self.active_phase_id = active_phase_id
        self.current = current
        self.target = target

    def details(self) -> dict[str, Any]:
        return {
            "id": self.phase_id,
            "active_phase_id": self.active_phase_id,
            "current_status": self.current,
            "target_status": self.target,
        }


class TaskConstraintError(AgentPMError):
    """A task cannot start while another task in its phase is wip."""

    code = "task_constraint_violation"

    def __init__(
        self, task_id: str, active_task_id: str, *, current: str, target: str = "wip", hint: str = ""
    ) -> None:
        super().__init__(
            f"Cannot start task {task_id}: task {active_task_id} is already active in this phase",
            hint=hint,
        )
        self.task_id = task_id
        self.active_task_id = active_task_id
        self.current = current
        self.target = target

    def details(self) -> dict[str, Any]:
        return {
            "id": self.task_id,
            "active_task_id": self.active_task_id,
            "current_status": self.current,
            "target_status": self.target,
        }


# ---------------------------------------------------------------------------
# Completion gates
# ---------------------------------------------------------------------------


class CompletionBlockedError(AgentPMError):
    """Base for errors that enumerate the items blocking a transition."""

    kind = ""

    def __init__(
        self,
        entity_id: str,
        name: str,
        blocking: list[BlockingItem],
        message: str,
        *,
        current: str,
        target: str,
        hint: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.entity_id = entity_id
        self.name = name
        self.blocking = blocking
        self.current = current
        self.target = target

    @property
    def blocking_tasks(self) -> list[BlockingItem]:
        return [b for b in self.blocking if b.kind == "task"]

    @property
    def blocking_tests(self) -> list[BlockingItem]:
        return [b for b in self.blocking if b.kind == "test"]

    @property
    def blocking_phases(self) -> list[BlockingItem]:
        return [b for b in self.blocking if b.kind == "phase"]

    def details(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.entity_id,
            "name": self.name,
            "current_status": self.current,
            "target_status": self.target,
            "blocking_items": [b.to_dict() for b in self.blocking],
        }


class PhaseCompletionBlockedError(CompletionBlockedError):
    code = "phase_completion_blocked"
    kind = "phase"

    def __init__(
        self,
        entity_id: str,
        name: str,
        blocking: list[BlockingItem],
        *,
        current: str,
        target: str = "done",
        hint: str = "",
    ) -> None:
        tasks = sum(1 for b in blocking if b.kind == "task")
        tests = sum(1 for b in blocking if b.kind == "test")
        super().__init__(
            entity_id,
            name,
            blocking,
            f"Phase {entity_id} cannot be completed: {tasks} pending task(s), {tests} unfinished test(s)",
            current=current,
            target=target,
            hint=hint,
        )

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["pending_tasks"] = len(self.blocking_tasks)
        data["unfinished_tests"] = len(self.blocking_tests)
        return data


class TaskCompletionBlockedError(CompletionBlockedError):
    code = "task_completion_blocked"
    kind = "task"

    def __init__(
        self,
        entity_id: str,
        name: str,
        blocking: list[BlockingItem],
        *,
        current: str,
        target: str = "done",
        hint: str = "",
    ) -> None:
        super().__init__(
            entity_id,
            name,
            blocking,
            f"Task {entity_id} cannot be completed: {len(blocking)} unfinished test(s)",
            current=current,
            target=target,
            hint=hint,
        )


class EpicCompletionBlockedError(CompletionBlockedError):
    code = "epic_completion_blocked"
    kind = "epic"

    def __init__(
        self,
        entity_id: str,
        name: str,
        blocking: list[BlockingItem],
        *,
        current: str,
        target: str = "done",
        hint: str = "",
    ) -> None:
        phases = sum(1 for b in blocking if b.kind == "phase")
        tests = sum(1 for b in blocking if b.kind == "test")
        super().__init__(
            entity_id,
            name,
            blocking,
            f"Epic {entity_id} cannot be completed: {phases} unfinished phase(s), {tests} failing test(s)",
            current=current,
            target=target,
            hint=hint,
        )


class TestPrerequisiteError(CompletionBlockedError):
    """Phase start blocked by unfinished tests in earlier phases."""

    __test__ = False  # not a pytest class

    code = "test_prerequisite"
    kind = "phase"

    def __init__(
        self,
        entity_id: str,
        name: str,
        blocking: list[BlockingItem],
        *,
        current: str,
        target: str = "wip",
        hint: str = "",
    ) -> None:
        super().__init__(
            entity_id,
            name,
            blocking,
            f"Cannot start phase {entity_id}: {len(blocking)} test(s) in earlier phases are not finished",
            current=current,
            target=target,
            hint=hint,
        )


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------


class MissingReasonError(AgentPMError):
    code = "missing_reason"

    def __init__(self, entity_id: str, operation: str, *, hint: str = "") -> None:
        super().__init__(f"A non-empty reason is required to {operation} test {entity_id}", hint=hint)
        self.entity_id = entity_id
        self.operation = operation

    def details(self) -> dict[str, Any]:
        return {"id": self.entity_id, "operation": self.operation}


class BatchValidationError(AgentPMError):
    """At least one id in a batch failed validation; nothing was applied."""

    code = "batch_validation_failed"

    def __init__(self, operation: str, failures: list[AgentPMError], valid_ids: list[str], *, hint: str = "") -> None:
        super().__init__(
            f"Batch {operation} rejected: {len(failures)} of {len(failures) + len(valid_ids)} test(s) failed validation",
            hint=hint,
        )
        self.operation = operation
        self.failures = failures
        self.valid_ids = valid_ids

    @property
    def failed_ids(self) -> list[str]:
        return [getattr(f, "entity_id", "") for f in self.failures]

    def details(self) -> dict[str, Any]:
        failures: list[BatchFailureDict] = [
            {"id": getattr(f, "entity_id", ""), "error": f.message, "code": f.code} for f in self.failures
        ]
        return {"operation": self.operation, "failures": failures, "valid_ids": self.valid_ids}


class InvalidTimeFormatError(AgentPMError):
    code = "invalid_time_format"

    def __init__(self, value: str, *, hint: str = "") -> None:
        super().__init__(
            f"Invalid time format: {value!r}",
            hint=hint or "Use ISO 8601, e.g. 2025-08-16T15:30:00Z",
        )
        self.value = value


# ---------------------------------------------------------------------------
# Collaborator errors
# ---------------------------------------------------------------------------


class StorageError(AgentPMError):
    code = "storage_error"

    def __init__(self, message: str, path: str = "", *, hint: str = "") -> None:
        super().__init__(message, hint=hint)
        self.path = path

    def details(self) -> dict[str, Any]:
        return {"path": self.path} if self.path else {}


class EpicValidationError(StorageError):
    """The document parsed but fails structural validation."""

    def __init__(self, issues: list[str], path: str = "", *, hint: str = "") -> None:
        summary = "; ".join(issues[:3])
        more = f" (+{len(issues) - 3} more)" if len(issues) > 3 else ""
        super().__init__(f"Epic failed structural validation: {summary}{more}", path, hint=hint)
        self.issues = issues

    def details(self) -> dict[str, Any]:
        data = super().details()
        data["issues"] = self.issues
        return data


class ConfigError(AgentPMError):
    code = "config_error"
