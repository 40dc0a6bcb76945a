"""Execution scheduler: runs an execution plan phase by phase.

Phases are barriers: every task of a phase reaches a terminal state before
the next phase starts. Within a phase, tasks run either one at a time in
phase order, or as a bounded concurrent batch followed by the overflow run
one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from workflow_engine.exceptions import CriticalTaskFailure, WorkflowCancelledError
from workflow_engine.runtime.context import ExecutionContext, RunControl
from workflow_engine.runtime.handler_registry import HandlerRegistry
from workflow_engine.runtime.report_builder import ReportBuilder
from workflow_engine.runtime.resource_guard import ResourceGuard
from workflow_engine.runtime.retry import RetryController
from workflow_engine.schemas import (
    ExecutionMode,
    ExecutionPlan,
    ExecutionStrategy,
    Severity,
    Task,
    TaskExecutionResult,
    TaskMetrics,
    TaskStatus,
    Workflow,
)
from workflow_engine.telemetry import TelemetryBus

logger = logging.getLogger(__name__)


class ExecutionScheduler:
    """Consume an ExecutionPlan for one run.

    Owns nothing beyond the run: results go to the ReportBuilder, events to
    the TelemetryBus. ``run`` propagates CriticalTaskFailure (after recording
    the failed result) and WorkflowCancelledError to the engine.
    """

    def __init__(
        self,
        strategy: ExecutionStrategy,
        handlers: HandlerRegistry,
        retry_controller: RetryController,
        builder: ReportBuilder,
        context: ExecutionContext,
        control: RunControl,
        telemetry: Optional[TelemetryBus] = None,
        resource_guard: Optional[ResourceGuard] = None,
    ):
        self.strategy = strategy
        self.handlers = handlers
        self.retry_controller = retry_controller
        self.builder = builder
        self.context = context
        self.control = control
        self.telemetry = telemetry
        self.resource_guard = resource_guard

    @property
    def workflow_id(self) -> str:
        return self.control.workflow_id

    async def run(self, workflow: Workflow, plan: ExecutionPlan) -> None:
        tasks = workflow.task_map()
        for phase in plan.phases:
            await self.control.checkpoint()
            phase_tasks = [tasks[task_id] for task_id in phase.task_ids]
            logger.debug(
                "Workflow %s phase %d: %s",
                self.workflow_id, phase.index, ", ".join(phase.task_ids),
            )

            runnable: List[Task] = []
            for task in phase_tasks:
                if task.dependencies and self.telemetry:
                    self.telemetry.dependency_resolved(self.workflow_id, task.task_id, task.dependencies)
                blocker = self._blocking_dependency(task)
                if blocker is not None:
                    self._skip(task, blocker)
                else:
                    runnable.append(task)

            if not runnable:
                continue
            if self.should_parallelize(runnable):
                self.builder.record_parallel_phase()
                await self._run_parallel(runnable, phase.index)
            else:
                for task in runnable:
                    await self._run_task(task, phase.index)

    def should_parallelize(self, tasks: List[Task]) -> bool:
        """Decide whether a phase runs as a concurrent batch."""
        mode = self.strategy.mode
        if len(tasks) <= 1 or mode == ExecutionMode.SEQUENTIAL:
            return False
        if mode == ExecutionMode.PARALLEL:
            return True
        # adaptive, priority_first, resource_aware
        phase_ids = {task.task_id for task in tasks}
        return not any(dep in phase_ids for task in tasks for dep in task.dependencies)

    def concurrency_ceiling(self) -> int:
        limit = self.strategy.max_concurrency
        if self.strategy.mode == ExecutionMode.RESOURCE_AWARE and self.resource_guard:
            limit = self.resource_guard.admissible_concurrency(self.strategy.resource_limits, limit)
        return limit

    async def _run_parallel(self, tasks: List[Task], phase: int) -> None:
        ceiling = self.concurrency_ceiling()
        batch, overflow = tasks[:ceiling], tasks[ceiling:]
        logger.debug(
            "Running %d tasks concurrently (ceiling %d), %d after",
            len(batch), ceiling, len(overflow),
        )

        # Siblings are not cancelled when one fails; every batch task finishes.
        outcomes = await asyncio.gather(
            *(self._run_task(task, phase) for task in batch),
            return_exceptions=True,
        )
        errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        for error_type in (CriticalTaskFailure, WorkflowCancelledError):
            for error in errors:
                if isinstance(error, error_type):
                    raise error
        if any(isinstance(error, asyncio.CancelledError) for error in errors):
            # gather itself raises if this run is cancelled; here a task was cancelled on its own.
            logger.warning("Task cancelled inside concurrent batch of workflow %s", self.workflow_id)
            raise WorkflowCancelledError(self.workflow_id)
        if errors:
            raise errors[0]

        for task in overflow:
            await self._run_task(task, phase)

    async def _run_task(self, task: Task, phase: int) -> None:
        await self.control.checkpoint()
        handler = self.handlers.resolve(task)
        severity = Severity.CRITICAL if task.critical else Severity.ERROR
        try:
            result = await self.retry_controller.execute(
                task, handler, self.context, self.workflow_id, phase, self.control,
            )
        except CriticalTaskFailure as exc:
            self.builder.record_result(exc.result, severity)
            raise
        self.builder.record_result(result, severity)

    def _blocking_dependency(self, task: Task) -> Optional[str]:
        if not self.strategy.failure_handling.skip_dependent_tasks:
            return None
        for dep_id in task.dependencies:
            result = self.builder.result(dep_id)
            if result is None or result.status != TaskStatus.COMPLETED:
                return dep_id
        return None

    def _skip(self, task: Task, blocker: str) -> None:
        blocker_result = self.builder.result(blocker)
        status = blocker_result.status.value if blocker_result else "missing"
        reason = f"Dependency {blocker} {status}"
        now = self.retry_controller.clock()
        logger.info("Skipping task %s (%s): %s", task.name, task.task_id, reason)
        self.builder.record_result(TaskExecutionResult(
            task_id=task.task_id,
            status=TaskStatus.SKIPPED,
            success=False,
            error=reason,
            metrics=TaskMetrics(start_time=now, end_time=now),
        ))
        if self.telemetry:
            self.telemetry.task_skipped(self.workflow_id, task.task_id, reason)
