"""Post-run analytics: critical path, parallelization score and insights."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from workflow_engine.dag import TaskGraph
from workflow_engine.schemas import (
    ExecutionStatistics,
    ExecutionStrategy,
    Insight,
    InsightImpact,
    InsightType,
    RunStatus,
    TaskExecutionResult,
    Workflow,
)
from workflow_engine.telemetry import TelemetryBus

logger = logging.getLogger(__name__)

CRITICAL_PATH_SHARE = 0.8
PARALLELIZATION_THRESHOLD = 0.7
RETRY_RATE_THRESHOLD = 0.3
FAILURE_RATE_THRESHOLD = 0.2
SLOW_TASK_FACTOR = 2.0
LOW_MEMORY_SHARE = 0.3
HIGH_MEMORY_SHARE = 0.9


@dataclass
class AnalysisSummary:
    critical_path: List[str] = field(default_factory=list)
    critical_path_duration: float = 0.0
    parallelization_score: float = 0.0
    insights: List[Insight] = field(default_factory=list)


class AnalyticsEngine:
    """Derive diagnostics from a finished (or aborted/cancelled) run.

    Analysis is read-only with respect to the run: it never changes results,
    only produces an AnalysisSummary for the report builder. High-impact
    performance insights are also published as PERFORMANCE_WARNING events.
    """

    def __init__(self, telemetry: Optional[TelemetryBus] = None):
        self.telemetry = telemetry

    @staticmethod
    def critical_path(
        workflow: Workflow,
        task_results: Optional[Mapping[str, TaskExecutionResult]] = None,
    ) -> Tuple[List[str], float]:
        """Heaviest leaf-terminated dependency chain.

        Weights are measured durations of executed tasks, else each task's
        ``estimated_duration_ms``, else 1000ms.
        """
        weights: Dict[str, float] = {
            task_id: result.metrics.duration
            for task_id, result in (task_results or {}).items()
            if result.executed
        }
        return TaskGraph.from_workflow(workflow).longest_path(weights)

    @staticmethod
    def parallelization_score(workflow: Workflow) -> float:
        """Weakly-connected components per task (0 for single-task workflows)."""
        if len(workflow.tasks) <= 1:
            return 0.0
        components = TaskGraph.from_workflow(workflow).connected_components()
        return len(components) / len(workflow.tasks)

    def analyze(
        self,
        workflow: Workflow,
        strategy: ExecutionStrategy,
        task_results: Mapping[str, TaskExecutionResult],
        statistics: ExecutionStatistics,
        run_duration: float,
        status: RunStatus = RunStatus.COMPLETED,
        failed_task_id: Optional[str] = None,
    ) -> AnalysisSummary:
        """Compute the critical path, parallelization score and insights.

        Args:
            failed_task_id: For aborted runs, the critical task that failed.
        """
        path, path_duration = self.critical_path(workflow, task_results)
        score = self.parallelization_score(workflow)
        insights: List[Insight] = []
        total = statistics.total_tasks
        limits = strategy.resource_limits

        if score > PARALLELIZATION_THRESHOLD:
            insights.append(Insight(
                type=InsightType.OPTIMIZATION,
                message="High parallelization potential detected",
                impact=InsightImpact.MEDIUM,
                suggestion="Consider increasing max_concurrency for better performance",
            ))

        if run_duration > 0 and path_duration > run_duration * CRITICAL_PATH_SHARE:
            insights.append(Insight(
                type=InsightType.PERFORMANCE,
                message="Critical path dominates execution time",
                impact=InsightImpact.HIGH,
                suggestion="Focus optimization efforts on critical path tasks",
            ))

        if total and statistics.retried_tasks > total * RETRY_RATE_THRESHOLD:
            insights.append(Insight(
                type=InsightType.WARNING,
                message="High retry rate detected",
                impact=InsightImpact.MEDIUM,
                suggestion="Review task reliability and retry configuration",
            ))

        if total and statistics.failed_tasks > total * FAILURE_RATE_THRESHOLD:
            rate = statistics.failed_tasks / total
            insights.append(Insight(
                type=InsightType.WARNING,
                message=f"High failure rate detected ({rate * 100:.1f}%)",
                impact=InsightImpact.HIGH,
                suggestion="Review task reliability and error handling",
            ))

        executed = [result for result in task_results.values() if result.executed]
        if executed:
            slowest = max(executed, key=lambda result: result.metrics.duration)
            if slowest.metrics.duration > statistics.average_task_duration * SLOW_TASK_FACTOR:
                task = workflow.get_task(slowest.task_id)
                name = task.name if task else slowest.task_id
                insights.append(Insight(
                    type=InsightType.PERFORMANCE,
                    message=f'Task "{name}" is significantly slower than average',
                    impact=InsightImpact.HIGH,
                    suggestion="Consider optimizing or parallelizing this task",
                ))

            average_memory = sum(result.metrics.memory_used for result in executed) / len(executed)
            if average_memory < limits.max_memory_mb * LOW_MEMORY_SHARE:
                insights.append(Insight(
                    type=InsightType.OPTIMIZATION,
                    message="Low memory utilization detected",
                    impact=InsightImpact.LOW,
                    suggestion="Consider increasing concurrency for better resource utilization",
                ))

        if statistics.peak_memory_usage > limits.max_memory_mb * HIGH_MEMORY_SHARE:
            insights.append(Insight(
                type=InsightType.PERFORMANCE,
                message="High memory usage detected",
                impact=InsightImpact.HIGH,
                suggestion="Consider reducing max_concurrency or optimizing memory usage",
            ))

        if status == RunStatus.ABORTED and strategy.failure_handling.generate_failure_report:
            task = workflow.get_task(failed_task_id) if failed_task_id else None
            label = f"{task.name} ({task.task_id})" if task else (failed_task_id or "unknown")
            insights.append(Insight(
                type=InsightType.ERROR,
                message=f"Workflow aborted: critical task {label} failed",
                impact=InsightImpact.HIGH,
                suggestion="Inspect the task error or mark the task non-critical",
            ))

        if self.telemetry:
            for insight in insights:
                if insight.type == InsightType.PERFORMANCE and insight.impact == InsightImpact.HIGH:
                    self.telemetry.performance_warning(workflow.workflow_id, insight.message, insight.suggestion)

        logger.debug(
            "Analyzed workflow %s: critical path %s (%.0fms), score %.2f, %d insights",
            workflow.workflow_id, " -> ".join(path), path_duration, score, len(insights),
        )
        return AnalysisSummary(
            critical_path=path,
            critical_path_duration=path_duration,
            parallelization_score=score,
            insights=insights,
        )
