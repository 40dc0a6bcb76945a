"""Retry controller: runs one task to a terminal result.

Each attempt passes the resource guard, then runs the handler under a
timeout. Failed attempts are retried with exponential backoff until
``retry.max_attempts`` retries are spent.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from workflow_engine.exceptions import (
    CriticalTaskFailure,
    TaskTimeoutError,
    WorkflowCancelledError,
)
from workflow_engine.runtime.context import ExecutionContext, RunControl
from workflow_engine.runtime.handler_registry import HandlerResult, TaskHandler
from workflow_engine.runtime.resource_guard import ResourceGuard
from workflow_engine.schemas import (
    ExecutionStrategy,
    RetryConfig,
    Task,
    TaskExecutionResult,
    TaskMetrics,
    TaskStatus,
)
from workflow_engine.telemetry import TelemetryBus

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


def epoch_ms() -> float:
    return time.time() * 1000.0


def compute_backoff_delay(retry: RetryConfig, failure_number: int) -> float:
    """Delay in ms before the retry that follows failure ``failure_number`` (1-based)."""
    delay = retry.initial_delay_ms * retry.backoff_multiplier ** (failure_number - 1)
    return min(delay, retry.max_delay_ms)


class RetryController:
    """Drive a task through its attempts and build its TaskExecutionResult.

    Args:
        strategy: Strategy snapshot of the current run.
        resource_guard: Admission check before each attempt (optional).
        telemetry: Event bus for started/retrying/completed/failed events.
        clock: Returns the current time in epoch milliseconds.
        sleep: Coroutine function taking seconds, used for backoff delays.
    """

    def __init__(
        self,
        strategy: ExecutionStrategy,
        resource_guard: Optional[ResourceGuard] = None,
        telemetry: Optional[TelemetryBus] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.strategy = strategy
        self.resource_guard = resource_guard
        self.telemetry = telemetry
        self.clock = clock or epoch_ms
        self.sleep = sleep or asyncio.sleep

    async def execute(
        self,
        task: Task,
        handler: TaskHandler,
        context: ExecutionContext,
        workflow_id: str,
        phase: int = 0,
        control: Optional[RunControl] = None,
    ) -> TaskExecutionResult:
        """Run ``task`` until it succeeds, exhausts its retries, or the run is cancelled.

        Returns:
            The task's terminal result (completed, failed or cancelled).

        Raises:
            CriticalTaskFailure: If a critical task failed for good and the
                strategy stops on critical failures. The exception carries the
                failed result.
        """
        retry = self.strategy.retry
        timeout_ms = task.timeout_ms or self.strategy.default_timeout_ms
        start_time = self.clock()
        failures = 0
        last_error: Optional[Exception] = None

        if self.telemetry:
            self.telemetry.task_started(workflow_id, task.task_id, task.name, phase)

        while failures <= retry.max_attempts:
            if failures:
                delay_ms = compute_backoff_delay(retry, failures)
                logger.debug("Retrying task %s in %gms", task.task_id, delay_ms)
                if self.telemetry:
                    self.telemetry.task_retrying(workflow_id, task.task_id, last_error, failures, delay_ms)
                try:
                    await self._checkpoint(context, control, workflow_id)
                    await self.sleep(delay_ms / 1000.0)
                    await self._checkpoint(context, control, workflow_id)
                except WorkflowCancelledError as exc:
                    logger.info("Task %s cancelled before retry %d", task.task_id, failures)
                    return self._result(task, TaskStatus.CANCELLED, start_time, failures - 1, error=exc)

            try:
                if self.resource_guard:
                    self.resource_guard.check(self.strategy.resource_limits, workflow_id, task.task_id)
                value = await self._attempt(task, handler, context, timeout_ms)
            except Exception as exc:
                failures += 1
                last_error = exc
                logger.warning(
                    "Task failed (attempt %d): %s (%s): %s",
                    failures, task.name, task.task_id, exc,
                )
                continue

            outcome = HandlerResult.coerce(value)
            result = self._result(task, TaskStatus.COMPLETED, start_time, failures, outcome=outcome)
            if self.telemetry:
                self.telemetry.task_completed(
                    workflow_id, task.task_id, result.metrics.duration, result.metrics.retry_count,
                )
            return result

        result = self._result(task, TaskStatus.FAILED, start_time, failures - 1, error=last_error)
        if self.telemetry:
            self.telemetry.task_failed(
                workflow_id, task.task_id, result.error, result.error_type, result.metrics.retry_count,
            )
        if task.critical and self.strategy.failure_handling.stop_on_critical_failure:
            raise CriticalTaskFailure(task.task_id, task.name, result)
        return result

    async def _attempt(self, task: Task, handler: TaskHandler, context: ExecutionContext, timeout_ms: float) -> Any:
        try:
            return await asyncio.wait_for(self._invoke(handler, task, context), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            # A thread-backed handler keeps running; it should poll context.cancelled.
            raise TaskTimeoutError(task.task_id, timeout_ms)

    @staticmethod
    async def _invoke(handler: TaskHandler, task: Task, context: ExecutionContext) -> Any:
        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None)):
            return await handler(task, context)
        value = await asyncio.to_thread(handler, task, context)
        if inspect.isawaitable(value):
            value = await value
        return value

    @staticmethod
    async def _checkpoint(context: ExecutionContext, control: Optional[RunControl], workflow_id: str) -> None:
        if control is not None:
            await control.checkpoint()
        else:
            context.cancellation.raise_if_cancelled(workflow_id)

    def _result(
        self,
        task: Task,
        status: TaskStatus,
        start_time: float,
        retry_count: int,
        outcome: Optional[HandlerResult] = None,
        error: Optional[Exception] = None,
    ) -> TaskExecutionResult:
        end_time = self.clock()
        outcome = outcome or HandlerResult()
        return TaskExecutionResult(
            task_id=task.task_id,
            status=status,
            success=status == TaskStatus.COMPLETED,
            output=outcome.output,
            error=str(error) if error is not None else None,
            error_type=type(error).__name__ if error is not None else None,
            artifacts=list(outcome.artifacts),
            metrics=TaskMetrics(
                start_time=start_time,
                end_time=end_time,
                duration=max(0.0, end_time - start_time),
                memory_used=outcome.memory_used,
                cpu_used=outcome.cpu_used,
                retry_count=max(0, retry_count),
            ),
        )
