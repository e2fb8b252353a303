"""Handoff and documentation reports for an epic.

``build_handoff`` produces a structured snapshot an incoming agent can
read to pick up the work. ``generate_docs`` renders a markdown document
for humans. Both are read-only.
"""

from __future__ import annotations

import re
from datetime import datetime

from agentpm import query
from agentpm.clock import format_timestamp
from agentpm.models import Epic
from agentpm.types.core import ISOTimestamp
from agentpm.types.reports import HandoffDict

DEFAULT_HANDOFF_LIMIT = 5
DOCS_EVENT_LIMIT = 10

# Matches C0/C1 control characters except tab/newline (which we handle separately)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def _sanitize(text: str) -> str:
    """Make untrusted text safe for a single markdown table cell or line."""
    text = _CONTROL_CHARS_RE.sub("", text)
    text = " ".join(text.split())
    text = text.replace("|", "\\|")
    if len(text) > 200:
        text = text[:197] + "..."
    return text


def _fmt(value: datetime | None) -> str:
    return format_timestamp(value) if value is not None else "-"


def blockers(epic: Epic) -> list[str]:
    """Failing tests first, then the text of every ``blocker`` note."""
    found = [f"Failed test {t.id}: {t.name}" for t in epic.failing_tests()]
    found.extend(e.data for e in epic.events if e.type == "blocker")
    return found


def build_handoff(epic: Epic, generated_at: datetime, limit: int = DEFAULT_HANDOFF_LIMIT) -> HandoffDict:
    state = query.current_state(epic)
    stats = query.status(epic)
    return {
        "generated_at": ISOTimestamp(format_timestamp(generated_at)),
        "epic_info": {
            "id": epic.id,
            "name": epic.name,
            "status": epic.status,
            "started": ISOTimestamp(format_timestamp(epic.created_at)) if epic.created_at else None,
            "assignee": epic.assignee,
        },
        "current_state": state.to_dict(),
        "summary": {
            "completed_phases": stats["completed_phases"],
            "total_phases": stats["total_phases"],
            "passing_tests": stats["passing_tests"],
            "failing_tests": stats["failing_tests"],
            "completion_percentage": stats["completion_percentage"],
        },
        "recent_events": [e.to_dict() for e in query.recent_events(epic, limit)],
        "blockers": blockers(epic),
    }


def render_handoff(report: HandoffDict) -> str:
    """Plain-text rendering of a handoff report."""
    info = report["epic_info"]
    state = report["current_state"]
    summary = report["summary"]
    lines = ["=== AGENT HANDOFF REPORT ===", ""]
    lines.append(f"Epic: {info['name']}")
    lines.append(f"ID: {info['id']}")
    lines.append(f"Status: {info['status']}")
    lines.append(f"Assignee: {info['assignee'] or '-'}")
    lines.append(f"Started: {info['started'] or '-'}")
    lines.append("")
    lines.append("CURRENT STATE:")
    if state["active_phase"]:
        lines.append(f"  Active Phase: {state['active_phase']}")
    if state["active_task"]:
        lines.append(f"  Active Task: {state['active_task']}")
    lines.append(f"  Next Action: {state['next_action']}")
    lines.append("")
    lines.append("PROGRESS SUMMARY:")
    lines.append(f"  Completion: {summary['completion_percentage']}%")
    lines.append(f"  Phases: {summary['completed_phases']}/{summary['total_phases']} completed")
    lines.append(f"  Tests: {summary['passing_tests']} passing, {summary['failing_tests']} failing")
    lines.append("")
    if report["blockers"]:
        lines.append("BLOCKERS:")
        lines.extend(f"  - {b}" for b in report["blockers"])
        lines.append("")
    if report["recent_events"]:
        lines.append("RECENT EVENTS:")
        lines.extend(f"  [{e['timestamp']}] {e['type']}: {e['data']}" for e in report["recent_events"])
        lines.append("")
    lines.append(f"Generated at: {report['generated_at']}")
    return "\n".join(lines) + "\n"


def generate_docs(epic: Epic, generated_at: datetime) -> str:
    """Markdown documentation of the epic's progress."""
    stats = query.status(epic)
    lines: list[str] = []

    lines.append(f"# {_sanitize(epic.name)}")
    lines.append("")
    lines.append(f"_Generated {format_timestamp(generated_at)}_")
    lines.append("")

    lines.append("## Epic Overview")
    lines.append("")
    lines.append(f"- **ID:** {epic.id}")
    lines.append(f"- **Status:** {epic.status}")
    lines.append(f"- **Assignee:** {_sanitize(epic.assignee) or '-'}")
    lines.append(f"- **Started:** {_fmt(epic.created_at)}")
    lines.append(f"- **Completion:** {stats['completion_percentage']}%")
    if epic.description:
        lines.append("")
        lines.append(epic.description.strip())
    lines.append("")

    lines.append("## Phase Progress")
    lines.append("")
    lines.append(f"{stats['completed_phases']}/{stats['total_phases']} phases completed.")
    lines.append("")
    if epic.phases:
        lines.append("| ID | Name | Status | Tasks | Started | Completed |")
        lines.append("|---|---|---|---|---|---|")
        for phase in epic.phases:
            lines.append(
                f"| {phase.id} | {_sanitize(phase.name)} | {phase.status} | {len(epic.tasks_in_phase(phase.id))} "
                f"| {_fmt(phase.started_at)} | {_fmt(phase.completed_at)} |"
            )
        lines.append("")

    lines.append("## Task Status")
    lines.append("")
    lines.append(f"{stats['completed_tasks']}/{stats['total_tasks']} tasks completed.")
    if stats["active_task"]:
        lines.append(f"Active task: {stats['active_task']}")
    lines.append("")
    if epic.tasks:
        lines.append("| ID | Phase | Name | Status | Assignee |")
        lines.append("|---|---|---|---|---|")
        for task in epic.tasks:
            lines.append(
                f"| {task.id} | {task.phase_id} | {_sanitize(task.name)} | {task.status} "
                f"| {_sanitize(task.assignee) or '-'} |"
            )
        lines.append("")

    lines.append("## Test Results")
    lines.append("")
    lines.append(
        f"{stats['total_tests']} tests: {stats['passing_tests']} passing, {stats['failing_tests']} failing."
    )
    lines.append("")
    for test in epic.tests:
        marker = "FAIL" if test.is_failing else ("PASS" if test.status == "done" else test.status.upper())
        note = f": {_sanitize(test.failure_note)}" if test.is_failing and test.failure_note else ""
        lines.append(f"- [{marker}] {test.id} {_sanitize(test.name)} (task {test.task_id}){note}")
    if epic.tests:
        lines.append("")

    lines.append("## Blockers")
    lines.append("")
    found = blockers(epic)
    lines.extend(f"- {_sanitize(b)}" for b in found)
    if not found:
        lines.append("- (none)")
    lines.append("")

    lines.append("## Recent Activity")
    lines.append("")
    recent = query.recent_events(epic, DOCS_EVENT_LIMIT)
    for event in recent:
        lines.append(f"- {format_timestamp(event.timestamp)} **{event.type}** {_sanitize(event.data)}")
    if not recent:
        lines.append("- (none)")
    lines.append("")

    return "\n".join(lines)
