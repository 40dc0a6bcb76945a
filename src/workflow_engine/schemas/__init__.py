"""Schema exports."""

from .base import FrozenSchema, SchemaBase, Severity
from .event import Event, EventType
from .metrics import MetricConfig, MetricSample, MetricsProfile, MetricType
from .report import (
    ExecutionErrorRecord,
    ExecutionReport,
    ExecutionStatistics,
    Insight,
    InsightImpact,
    InsightType,
    RunStatus,
    TaskExecutionResult,
    TaskMetrics,
)
from .strategy import ExecutionMode, ExecutionStrategy, FailureHandling, ResourceLimits, RetryConfig
from .task import PRIORITY_RANK, Task, TaskPriority, TaskStatus
from .workflow import ExecutionPlan, Phase, Workflow

__all__ = [
    "FrozenSchema",
    "SchemaBase",
    "Severity",
    "Event",
    "EventType",
    "MetricConfig",
    "MetricSample",
    "MetricsProfile",
    "MetricType",
    "ExecutionErrorRecord",
    "ExecutionReport",
    "ExecutionStatistics",
    "Insight",
    "InsightImpact",
    "InsightType",
    "RunStatus",
    "TaskExecutionResult",
    "TaskMetrics",
    "ExecutionMode",
    "ExecutionStrategy",
    "FailureHandling",
    "ResourceLimits",
    "RetryConfig",
    "PRIORITY_RANK",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "ExecutionPlan",
    "Phase",
    "Workflow",
]
