"""Resource guard: admission checks against the strategy's resource limits."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import psutil

from workflow_engine.exceptions import ResourceConstraintError
from workflow_engine.schemas import ResourceLimits
from workflow_engine.telemetry import TelemetryBus

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024

Probe = Callable[[], float]


class ResourceGuard:
    """Checks process memory and CPU before each task attempt.

    Memory over ``max_memory_mb`` fails the attempt with
    ResourceConstraintError (which the retry controller treats like any other
    attempt failure). CPU over ``max_cpu_percent`` is advisory: an event and a
    warning, never a failure. Disk limits are not measured.

    Probes are injectable so tests can simulate pressure.
    """

    def __init__(
        self,
        telemetry: Optional[TelemetryBus] = None,
        memory_probe: Optional[Probe] = None,
        cpu_probe: Optional[Probe] = None,
    ):
        self.telemetry = telemetry
        self._process = psutil.Process()
        self.memory_probe = memory_probe or self._process_memory_mb
        self.cpu_probe = cpu_probe or self._process_cpu_percent

    def _process_memory_mb(self) -> float:
        return self._process.memory_info().rss / BYTES_PER_MB

    def _process_cpu_percent(self) -> float:
        # Percent since the previous call on the same Process; 0.0 on the first call.
        return self._process.cpu_percent(interval=None)

    def memory_usage(self) -> float:
        usage = float(self.memory_probe())
        if self.telemetry and self.telemetry.metrics_collector:
            self.telemetry.metrics_collector.record_gauge("process_memory_mb", usage)
        return usage

    def cpu_usage(self) -> float:
        return float(self.cpu_probe())

    def check(self, limits: ResourceLimits, workflow_id: Optional[str], task_id: str) -> None:
        """Admit or reject one attempt of ``task_id``.

        Raises:
            ResourceConstraintError: If process memory exceeds max_memory_mb.
        """
        memory = self.memory_usage()
        if memory > limits.max_memory_mb:
            logger.warning(
                "Memory %.2fMB over limit %gMB before task %s",
                memory, limits.max_memory_mb, task_id,
            )
            if self.telemetry:
                self.telemetry.resource_constraint(workflow_id, task_id, "memory", memory, limits.max_memory_mb)
            raise ResourceConstraintError(task_id, "memory", memory, limits.max_memory_mb)

        cpu = self.cpu_usage()
        if cpu > limits.max_cpu_percent:
            logger.warning(
                "CPU %.1f%% over advisory limit %g%% before task %s",
                cpu, limits.max_cpu_percent, task_id,
            )
            if self.telemetry:
                self.telemetry.resource_constraint(
                    workflow_id, task_id, "cpu", cpu, limits.max_cpu_percent, advisory=True,
                )

    def admissible_concurrency(self, limits: ResourceLimits, max_concurrency: int) -> int:
        """Concurrency ceiling scaled by the remaining memory headroom.

        Full headroom keeps ``max_concurrency``; the ceiling shrinks
        proportionally as usage approaches the limit, never below 1.
        """
        memory = self.memory_usage()
        headroom = max(0.0, 1.0 - memory / limits.max_memory_mb)
        return max(1, min(max_concurrency, int(max_concurrency * headroom)))

