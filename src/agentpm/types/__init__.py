# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from models.py, lifecycle.py, or any service: this prevents circular imports.
"""Typed return-value contracts for the agentpm engine and its front ends."""

from __future__ import annotations

from agentpm.types.api import (
    BatchFailureDict,
    BlockingItemDict,
    ErrorResponse,
    OutcomeDict,
    PlanDict,
    TransitionDict,
)
from agentpm.types.core import (
    AgentPMConfigDict,
    CurrentStateDict,
    EpicDict,
    EventDict,
    ISOTimestamp,
    PhaseDict,
    TaskDict,
    TestDict,
    XMLRepairDict,
)
from agentpm.types.reports import (
    FailingTestDict,
    HandoffDict,
    PendingWorkDict,
    StatusDict,
)

__all__ = [
    "AgentPMConfigDict",
    "BatchFailureDict",
    "BlockingItemDict",
    "CurrentStateDict",
    "EpicDict",
    "ErrorResponse",
    "EventDict",
    "FailingTestDict",
    "HandoffDict",
    "ISOTimestamp",
    "OutcomeDict",
    "PendingWorkDict",
    "PhaseDict",
    "PlanDict",
    "StatusDict",
    "TaskDict",
    "TestDict",
    "TransitionDict",
    "XMLRepairDict",
]
