"""Tests for handoff and docs reports."""

from __future__ import annotations

from datetime import UTC, datetime

from agentpm.engine import EpicEngine
from agentpm.reports import blockers, build_handoff, generate_docs, render_handoff
from tests._epic_factory import make_epic

GENERATED = datetime(2025, 2, 1, 12, 0, tzinfo=UTC)


def _failing_engine(engine: EpicEngine) -> EpicEngine:
    engine.start_epic()
    engine.start_next()
    engine.start_test("T1")
    engine.fail_test("T1", "missing fixture")
    return engine


class TestBlockers:
    def test_failing_tests_then_blocker_notes(self, engine: EpicEngine) -> None:
        _failing_engine(engine)
        engine.log("Need credentials", "blocker")
        engine.log("Went with plan B", "decision")
        assert blockers(engine.load()) == ["Failed test T1: Scaffold works", "Need credentials"]

    def test_none(self) -> None:
        assert blockers(make_epic()) == []


class TestHandoff:
    def test_structure(self, engine: EpicEngine) -> None:
        _failing_engine(engine)
        report = engine.handoff(limit=2)
        assert report["generated_at"].startswith("2025-01-01T")
        assert report["epic_info"] == {
            "id": "E1",
            "name": "Sample epic",
            "status": "wip",
            "started": "2025-01-01T09:00:00Z",
            "assignee": "",
        }
        assert report["current_state"]["active_task"] == "P1_T1"
        assert report["current_state"]["next_action"] == "Fix failing tests: Scaffold works"
        assert report["summary"]["failing_tests"] == 1
        assert [e["type"] for e in report["recent_events"]] == ["test_failed", "test_started"]
        assert report["blockers"] == ["Failed test T1: Scaffold works"]

    def test_render(self) -> None:
        text = render_handoff(build_handoff(make_epic(), GENERATED))
        assert text.startswith("=== AGENT HANDOFF REPORT ===\n")
        assert "Next Action: Start next phase: Setup" in text
        assert "Completion: 0%" in text
        assert "BLOCKERS:" not in text
        assert text.endswith("Generated at: 2025-02-01T12:00:00Z\n")


class TestDocs:
    def test_sections(self) -> None:
        markdown = generate_docs(make_epic(), GENERATED)
        for heading in (
            "# Sample epic",
            "## Epic Overview",
            "## Phase Progress",
            "## Task Status",
            "## Test Results",
            "## Blockers",
            "## Recent Activity",
        ):
            assert heading in markdown
        assert "| P1 | Setup | pending | 2 | - | - |" in markdown
        assert "_Generated 2025-02-01T12:00:00Z_" in markdown

    def test_failing_test_listed(self, engine: EpicEngine) -> None:
        _failing_engine(engine)
        markdown = engine.docs()
        assert "- [FAIL] T1 Scaffold works (task P1_T1): missing fixture" in markdown
        assert "- Failed test T1: Scaffold works" in markdown

    def test_table_cells_escaped(self) -> None:
        epic = make_epic(phases=[("P1", "Setup | teardown\nnow")], tasks=[], tests=[])
        markdown = generate_docs(epic, GENERATED)
        assert "| P1 | Setup \\| teardown now | pending | 0 | - | - |" in markdown
