"""Report builder: accumulates one run's results into an ExecutionReport."""

from __future__ import annotations

from typing import Dict, List, Optional

from workflow_engine.schemas import (
    ExecutionErrorRecord,
    ExecutionReport,
    ExecutionStatistics,
    ExecutionStrategy,
    Insight,
    RunStatus,
    Severity,
    TaskExecutionResult,
    TaskStatus,
    Workflow,
)


class ReportBuilder:
    """Single-writer accumulator for one workflow run.

    Every task gets exactly one result slot; writing a slot twice is a bug
    in the scheduler and raises RuntimeError. Statistics are frozen models,
    replaced on every update. ``build`` freezes the run into an
    ExecutionReport, after which the builder rejects further writes.
    """

    def __init__(self, workflow: Workflow, strategy: ExecutionStrategy, start_time: float):
        self.workflow = workflow
        self.strategy = strategy
        self.start_time = start_time
        self.results: Dict[str, TaskExecutionResult] = {}
        self.statistics = ExecutionStatistics(total_tasks=len(workflow.tasks))
        self.errors: List[ExecutionErrorRecord] = []
        self.insights: List[Insight] = []
        self.artifacts: List[str] = []
        self.critical_path: List[str] = []
        self.critical_path_duration = 0.0
        self.parallelization_score = 0.0
        self._duration_total = 0.0
        self._executed = 0
        self._report: Optional[ExecutionReport] = None

    def _ensure_open(self) -> None:
        if self._report is not None:
            raise RuntimeError(f"Report for workflow {self.workflow.workflow_id} is already built")

    def result(self, task_id: str) -> Optional[TaskExecutionResult]:
        return self.results.get(task_id)

    def record_result(self, result: TaskExecutionResult, severity: Severity = Severity.ERROR) -> None:
        """Store a task's terminal result and fold it into the statistics.

        Failed results also produce an error record at ``severity``.

        Raises:
            RuntimeError: If the task already has a result or the report is built.
        """
        self._ensure_open()
        if result.task_id in self.results:
            raise RuntimeError(f"Result for task {result.task_id} already recorded")
        self.results[result.task_id] = result
        self.artifacts.extend(result.artifacts)

        stats = self.statistics
        metrics = result.metrics
        updates = {
            "retried_tasks": stats.retried_tasks + (1 if metrics.retry_count > 0 else 0),
            "total_retries": stats.total_retries + metrics.retry_count,
            "peak_memory_usage": max(stats.peak_memory_usage, metrics.memory_used),
            "peak_cpu_usage": max(stats.peak_cpu_usage, metrics.cpu_used),
        }
        if result.status == TaskStatus.COMPLETED:
            updates["completed_tasks"] = stats.completed_tasks + 1
        elif result.status == TaskStatus.FAILED:
            updates["failed_tasks"] = stats.failed_tasks + 1
        elif result.status == TaskStatus.SKIPPED:
            updates["skipped_tasks"] = stats.skipped_tasks + 1

        if result.executed:
            self._executed += 1
            self._duration_total += metrics.duration
            updates["average_task_duration"] = self._duration_total / self._executed

        self.statistics = stats.model_copy(update=updates)

        if result.status == TaskStatus.FAILED:
            self.record_error(result.task_id, result.error or "Task failed", metrics.end_time, severity)

    def record_error(
        self,
        task_id: str,
        message: str,
        timestamp: float,
        severity: Severity = Severity.ERROR,
    ) -> None:
        self._ensure_open()
        self.errors.append(ExecutionErrorRecord(
            task_id=task_id,
            message=message,
            timestamp=timestamp,
            severity=severity,
        ))

    def record_parallel_phase(self) -> None:
        self._ensure_open()
        self.statistics = self.statistics.model_copy(
            update={"parallel_executions": self.statistics.parallel_executions + 1}
        )

    def add_insights(self, insights: List[Insight]) -> None:
        self._ensure_open()
        self.insights.extend(insights)

    def set_analysis(self, critical_path: List[str], critical_path_duration: float, parallelization_score: float) -> None:
        self._ensure_open()
        self.critical_path = list(critical_path)
        self.critical_path_duration = critical_path_duration
        self.parallelization_score = parallelization_score

    def build(self, status: RunStatus, success: bool, end_time: float) -> ExecutionReport:
        """Freeze the run into an immutable report."""
        self._ensure_open()
        self._report = ExecutionReport(
            workflow=self.workflow,
            strategy=self.strategy,
            status=status,
            success=success,
            start_time=self.start_time,
            end_time=end_time,
            duration=max(0.0, end_time - self.start_time),
            task_results=dict(self.results),
            statistics=self.statistics,
            errors=list(self.errors),
            insights=list(self.insights),
            artifacts=list(self.artifacts),
            critical_path=list(self.critical_path),
            critical_path_duration=self.critical_path_duration,
            parallelization_score=self.parallelization_score,
        )
        return self._report
