"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from agentpm.clock import FixedClock
from agentpm.engine import EpicEngine
from tests._epic_factory import write_epic


@pytest.fixture
def mcp_engine(tmp_path: Path, clock: FixedClock) -> Generator[EpicEngine, None, None]:
    """Write epic.xml into tmp_path and patch the MCP module globals."""
    path = write_epic(tmp_path / "epic.xml")
    eng = EpicEngine(path, clock=clock)

    import agentpm.mcp_server as mcp_mod

    original_engine = mcp_mod.engine
    original_dir = mcp_mod._project_dir
    mcp_mod.engine = eng
    mcp_mod._project_dir = tmp_path

    yield eng

    mcp_mod.engine = original_engine
    mcp_mod._project_dir = original_dir
