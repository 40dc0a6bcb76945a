"""Runtime exports and helpers."""

from workflow_engine.runtime.analytics import AnalysisSummary, AnalyticsEngine
from workflow_engine.runtime.context import CancellationToken, ExecutionContext, RunControl
from workflow_engine.runtime.handler_registry import HandlerRegistry, HandlerResult
from workflow_engine.runtime.metrics_collector import MetricsCollector
from workflow_engine.runtime.planner import PhasePlanner
from workflow_engine.runtime.report_builder import ReportBuilder
from workflow_engine.runtime.resource_guard import ResourceGuard
from workflow_engine.runtime.retry import RetryController, compute_backoff_delay
from workflow_engine.runtime.scheduler import ExecutionScheduler

__all__ = [
    "AnalysisSummary",
    "AnalyticsEngine",
    "CancellationToken",
    "ExecutionContext",
    "RunControl",
    "HandlerRegistry",
    "HandlerResult",
    "MetricsCollector",
    "PhasePlanner",
    "ReportBuilder",
    "ResourceGuard",
    "RetryController",
    "compute_backoff_delay",
    "ExecutionScheduler",
]
