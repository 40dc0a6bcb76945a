"""Execution strategy schemas.

An ExecutionStrategy is configuration, not state: it lives for the lifetime of
an engine instance and may be replaced between runs. A run snapshots the
strategy it started with, and the snapshot is embedded in its report.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import FrozenSchema


class ExecutionMode(str, Enum):
    """How the scheduler decides between concurrent and one-at-a-time phases.

    - SEQUENTIAL: Every phase runs one task at a time.
    - PARALLEL: Every multi-task phase runs concurrently (bounded batch).
    - ADAPTIVE: Concurrent only if no task depends on another in the same phase.
    - PRIORITY_FIRST: As ADAPTIVE, with ready tasks ordered by priority rank.
    - RESOURCE_AWARE: As ADAPTIVE, with the concurrency ceiling scaled down by
      the current memory headroom.
    """

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ADAPTIVE = "adaptive"
    PRIORITY_FIRST = "priority_first"
    RESOURCE_AWARE = "resource_aware"


class RetryConfig(FrozenSchema):
    """Bounded retry with exponential backoff (no jitter).

    ``max_attempts`` counts retries after the first try, so a task may run up
    to ``max_attempts + 1`` times.
    """

    max_attempts: int = Field(default=3, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    initial_delay_ms: float = Field(default=1000.0, ge=0)
    max_delay_ms: float = Field(default=30000.0, ge=0)


class ResourceLimits(FrozenSchema):
    """Process resource ceilings.

    Memory is enforced before every attempt. CPU is advisory (reported, never
    fails an attempt). Disk is declared for configuration compatibility and is
    not measured.
    """

    max_memory_mb: float = Field(default=512.0, gt=0)
    max_cpu_percent: float = Field(default=80.0, gt=0)
    max_disk_space_mb: float = Field(default=1024.0, gt=0)


class FailureHandling(FrozenSchema):
    """What happens after a task exhausts its retries.

    - stop_on_critical_failure: Abort the run when a ``critical`` task fails.
    - skip_dependent_tasks: Record tasks downstream of a failed, skipped or
      cancelled task as skipped instead of running them.
    - generate_failure_report: Attach error-type insights to reports of
      aborted runs.
    """

    stop_on_critical_failure: bool = Field(default=True)
    skip_dependent_tasks: bool = Field(default=True)
    generate_failure_report: bool = Field(default=True)


class ExecutionStrategy(FrozenSchema):
    mode: ExecutionMode = Field(default=ExecutionMode.ADAPTIVE)
    max_concurrency: int = Field(default=4, ge=1)
    default_timeout_ms: float = Field(default=30000.0, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    resource_limits: ResourceLimits = Field(default_factory=ResourceLimits)
    failure_handling: FailureHandling = Field(default_factory=FailureHandling)
