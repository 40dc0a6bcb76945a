"""Task results and execution report schemas."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import FrozenSchema, Severity
from .strategy import ExecutionStrategy
from .task import TaskStatus
from .workflow import Workflow


class TaskMetrics(FrozenSchema):
    """Timing and resource figures for one task (all times in epoch ms)."""

    start_time: float = Field(default=0.0)
    end_time: float = Field(default=0.0)
    duration: float = Field(default=0.0)
    memory_used: float = Field(default=0.0, description="MB reported by the handler")
    cpu_used: float = Field(default=0.0, description="CPU percent reported by the handler")
    retry_count: int = Field(default=0)


class TaskExecutionResult(FrozenSchema):
    """Outcome of one task in one workflow run; written exactly once."""

    task_id: str
    status: TaskStatus
    success: bool
    output: Optional[Any] = Field(default=None)
    error: Optional[str] = Field(default=None)
    error_type: Optional[str] = Field(default=None, description="Exception class name of the last failure")
    artifacts: List[str] = Field(default_factory=list)
    metrics: TaskMetrics = Field(default_factory=TaskMetrics)

    @property
    def executed(self) -> bool:
        """True if at least one handler attempt was made."""
        return self.status != TaskStatus.SKIPPED


class ExecutionStatistics(FrozenSchema):
    """Aggregate counters for a run; replaced (never mutated) as tasks finish."""

    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    skipped_tasks: int = 0
    retried_tasks: int = 0
    total_retries: int = 0
    parallel_executions: int = 0
    average_task_duration: float = 0.0
    peak_memory_usage: float = 0.0
    peak_cpu_usage: float = 0.0


class ExecutionErrorRecord(FrozenSchema):
    task_id: str
    message: str
    timestamp: float
    severity: Severity = Field(default=Severity.ERROR)


class InsightType(str, Enum):
    PERFORMANCE = "performance"
    OPTIMIZATION = "optimization"
    WARNING = "warning"
    ERROR = "error"


class InsightImpact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Insight(FrozenSchema):
    """A diagnostic observation about a finished run."""

    type: InsightType
    message: str
    impact: InsightImpact
    suggestion: Optional[str] = Field(default=None)


class RunStatus(str, Enum):
    """How a workflow run ended.

    - COMPLETED: Every phase ran (individual non-critical tasks may have failed).
    - FAILED: Validation or cycle detection rejected the workflow; nothing ran.
    - ABORTED: A critical task failed under ``stop_on_critical_failure``.
    - CANCELLED: The run's cancellation token was triggered.
    """

    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class ExecutionReport(FrozenSchema):
    """Immutable summary of one workflow run.

    Built incrementally by the ReportBuilder and frozen when the run ends.
    ``task_results`` preserves the order in which tasks reached a terminal
    state; ``errors`` and ``insights`` preserve emission order.
    """

    workflow: Workflow
    strategy: ExecutionStrategy
    status: RunStatus
    success: bool
    start_time: float
    end_time: float
    duration: float
    task_results: Dict[str, TaskExecutionResult] = Field(default_factory=dict)
    statistics: ExecutionStatistics = Field(default_factory=ExecutionStatistics)
    errors: List[ExecutionErrorRecord] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    artifacts: List[str] = Field(default_factory=list)
    critical_path: List[str] = Field(default_factory=list)
    critical_path_duration: float = Field(default=0.0)
    parallelization_score: float = Field(default=0.0)

    @property
    def workflow_id(self) -> str:
        return self.workflow.workflow_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert the report to a JSON-serializable dict.

        Enums become their string values; task outputs are kept as-is, so they
        must themselves be JSON-serializable for ``to_json`` to succeed.
        """
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ExecutionReport:
        """Rebuild a report from ``to_dict`` output.

        Raises:
            pydantic.ValidationError: If data doesn't match the report schema.
        """
        return cls.model_validate(data)

    def to_json(self, indent: Optional[int] = None) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, payload: str) -> ExecutionReport:
        return cls.model_validate_json(payload)
