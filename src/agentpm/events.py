"""Event recorder: append-only log entries on the epic.

Recording is a pure append on ``epic.events``; nothing is persisted until
storage saves the epic.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from agentpm.models import Epic, Event, Phase, Task, Test

logger = logging.getLogger(__name__)

LIFECYCLE_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "epic_started",
        "epic_completed",
        "phase_started",
        "phase_completed",
        "task_started",
        "task_completed",
        "task_cancelled",
        "test_started",
        "test_passed",
        "test_failed",
        "test_cancelled",
        "test_batch_passed",
        "test_batch_failed",
    }
)

# Free-form entries added by ``agentpm log``.
NOTE_EVENT_TYPES: frozenset[str] = frozenset({"implementation", "blocker", "issue", "milestone", "decision", "note"})

VALID_EVENT_TYPES: frozenset[str] = LIFECYCLE_EVENT_TYPES | NOTE_EVENT_TYPES


def new_event_id() -> str:
    return f"evt-{uuid.uuid4().hex[:12]}"


def last_event_time(epic: Epic) -> datetime | None:
    return epic.events[-1].timestamp if epic.events else None


def record_event(epic: Epic, event_type: str, data: str, timestamp: datetime) -> Event:
    """Append a new event and return it.

    Raises ValueError for a type outside the closed set.
    """
    if event_type not in VALID_EVENT_TYPES:
        msg = f"Unknown event type '{event_type}'. Valid types: {', '.join(sorted(VALID_EVENT_TYPES))}"
        raise ValueError(msg)
    event = Event(id=new_event_id(), type=event_type, timestamp=timestamp, data=data)
    epic.events.append(event)
    logger.debug("event recorded: %s %s", event_type, event.id)
    return event


# ---------------------------------------------------------------------------
# Payload text
# ---------------------------------------------------------------------------


def describe(entity: Epic | Phase | Task | Test, verb: str, reason: str = "") -> str:
    """Render the free-text payload, e.g. ``Phase P1 (Setup) started``."""
    if isinstance(entity, Epic):
        text = f"Epic {entity.name} {verb}"
    else:
        kind = type(entity).__name__
        text = f"{kind} {entity.id} ({entity.name}) {verb}"
    if reason:
        text = f"{text}: {reason}"
    return text


def describe_batch(verb: str, tests: list[Test], reason: str = "") -> str:
    ids = ", ".join(t.id for t in tests)
    text = f"Batch {verb} {len(tests)} test(s): {ids}"
    if reason:
        text = f"{text}: {reason}"
    return text
