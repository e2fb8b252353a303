"""Shared pytest fixtures for agentpm tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest
from click.testing import CliRunner

from agentpm.clock import FixedClock
from agentpm.engine import EpicEngine
from agentpm.logging import LOGGER_NAME
from agentpm.models import Epic
from agentpm.storage import MemoryStorage
from tests._epic_factory import make_epic

EPIC_PATH = "epic.xml"


@pytest.fixture(autouse=True)
def _reset_agentpm_logger() -> Generator[None, None, None]:
    """Drop handlers the CLI attaches so they never outlive a test's tmp dir."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock() -> FixedClock:
    """Deterministic clock advancing one minute per reading."""
    return FixedClock(datetime(2025, 1, 1, 10, 0, tzinfo=UTC), step=timedelta(minutes=1))


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def epic() -> Epic:
    """Fresh two-phase epic: P1 (P1_T1, P1_T2), P2 (P2_T1), one test per task."""
    return make_epic()


@pytest.fixture
def engine(storage: MemoryStorage, clock: FixedClock, epic: Epic) -> EpicEngine:
    """EpicEngine over an in-memory copy of the ``epic`` fixture."""
    storage.save(epic, EPIC_PATH)
    return EpicEngine(EPIC_PATH, storage=storage, clock=clock)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
