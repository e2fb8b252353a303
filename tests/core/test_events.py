"""Tests for the event recorder."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest

from agentpm.events import (
    LIFECYCLE_EVENT_TYPES,
    NOTE_EVENT_TYPES,
    describe,
    describe_batch,
    new_event_id,
    record_event,
)
from agentpm.models import Epic

TS = datetime(2025, 1, 1, tzinfo=UTC)


class TestRecordEvent:
    def test_event_id_format(self) -> None:
        assert re.fullmatch(r"evt-[0-9a-f]{12}", new_event_id())
        assert new_event_id() != new_event_id()

    def test_appends(self, epic: Epic) -> None:
        event = record_event(epic, "phase_started", "Phase P1 (Setup) started", TS)
        assert epic.events[-1] is event
        assert event.timestamp == TS

    def test_rejects_unknown_type(self, epic: Epic) -> None:
        with pytest.raises(ValueError, match="Unknown event type 'phase_paused'"):
            record_event(epic, "phase_paused", "", TS)
        assert epic.events == []

    def test_lifecycle_tags_closed_set(self) -> None:
        assert len(LIFECYCLE_EVENT_TYPES) == 13
        assert not LIFECYCLE_EVENT_TYPES & NOTE_EVENT_TYPES


class TestDescribe:
    def test_epic(self, epic: Epic) -> None:
        assert describe(epic, "completed") == "Epic Sample epic completed"

    def test_entity_with_reason(self, epic: Epic) -> None:
        assert describe(epic.tests[0], "failed", "timeout") == "Test T1 (Scaffold works) failed: timeout"

    def test_batch(self, epic: Epic) -> None:
        assert describe_batch("passed", epic.tests[:2]) == "Batch passed 2 test(s): T1, T2"
