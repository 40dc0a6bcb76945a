"""Shared builders and fakes for workflow engine tests."""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from workflow_engine.runtime import ResourceGuard
from workflow_engine.schemas import Task, Workflow
from workflow_engine.telemetry import TelemetryBus


def make_task(task_id: str, *dependencies: str, **fields: Any) -> Task:
    fields.setdefault("name", f"Task {task_id}")
    return Task(task_id=task_id, dependencies=list(dependencies), **fields)


def make_workflow(*tasks: Task, workflow_id: str = "wf-test", name: str = "Test Workflow") -> Workflow:
    return Workflow(workflow_id=workflow_id, name=name, tasks=list(tasks))


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Backoff sleep that records delays (ms) instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds * 1000.0)
        if self.clock:
            self.clock.advance(seconds * 1000.0)
        await asyncio.sleep(0)


def quiet_guard(telemetry: Optional[TelemetryBus] = None, memory_mb: float = 64.0, cpu_percent: float = 5.0) -> ResourceGuard:
    """Resource guard with fixed probe readings."""
    return ResourceGuard(
        telemetry=telemetry,
        memory_probe=lambda: memory_mb,
        cpu_probe=lambda: cpu_percent,
    )
