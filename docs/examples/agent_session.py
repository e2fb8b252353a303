#!/usr/bin/env python3
"""One agent session with agentpm.

This example drives a small epic from start to finish through the
EpicEngine, the same API the CLI and MCP server use. A temporary epic
file is written, then the agent repeatedly asks for the next task,
runs its tests and completes it.

Key concepts shown:
  - Building an epic and saving it with FileStorage
  - Using start_next() to auto-advance through tasks and phases
  - Recording test results, including a failure that is later fixed
  - Typed errors: completing a task with unfinished tests is refused
  - Producing a handoff report for whoever picks up the work next

How to run:
    python docs/examples/agent_session.py
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from agentpm import Epic, EpicEngine, Phase, Task, Test
from agentpm.errors import TaskCompletionBlockedError
from agentpm.reports import render_handoff
from agentpm.storage import FileStorage


def build_epic() -> Epic:
    """A two-phase epic with one test per task."""
    return Epic(
        id="AUTH",
        name="User authentication",
        phases=[Phase(id="1A", name="Models"), Phase(id="1B", name="Endpoints")],
        tasks=[
            Task(id="1A_1", phase_id="1A", name="User table"),
            Task(id="1A_2", phase_id="1A", name="Password hashing"),
            Task(id="1B_1", phase_id="1B", name="Login route"),
        ],
        tests=[
            Test(id="T1", task_id="1A_1", phase_id="1A", name="User round-trips"),
            Test(id="T2", task_id="1A_2", phase_id="1A", name="Hash verifies"),
            Test(id="T3", task_id="1B_1", phase_id="1B", name="Login returns token"),
        ],
    )


def work_task(engine: EpicEngine, task_id: str) -> None:
    """Run every test of the task, then complete it."""
    tests = engine.load().tests_for_task(task_id)

    # Completing too early is refused with the list of blocking tests.
    try:
        engine.complete_task(task_id)
    except TaskCompletionBlockedError as exc:
        print(f"  Refused: {exc}")
        print(f"  Hint: {exc.hint}")

    for test in tests:
        engine.start_test(test.id)
        if test.id == "T2":
            engine.fail_test(test.id, "bcrypt rounds too low")
            print(f"  {test.id} failed, fixing...")
        engine.pass_test(test.id)
        print(f"  {test.id} passed")

    print(f"  {engine.complete_task(task_id).message}")


def main() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "epic.xml"
        FileStorage().save(build_epic(), path)
        engine = EpicEngine(path)

        print("=== Session ===")
        print(engine.start_epic().message)
        while True:
            plan = engine.start_next()
            print(plan.message)
            if plan.action == "complete_epic" or plan.task_id is None:
                break
            work_task(engine, plan.task_id)

        engine.log("Token expiry left at the default 1h", "decision")
        print(engine.complete_epic().message)

        print()
        print(render_handoff(engine.handoff()))


if __name__ == "__main__":
    main()
