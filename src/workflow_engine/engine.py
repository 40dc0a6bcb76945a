"""Workflow engine façade.

``WorkflowEngine`` wires the validator, planner, scheduler, retry controller,
resource guard, analytics and report builder together and is the only entry
point applications need.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .dag import TaskGraph, detect_cycles, validate_workflow
from .exceptions import (
    CriticalTaskFailure,
    CycleError,
    ValidationError,
    WorkflowCancelledError,
    WorkflowEngineError,
)
from .metrics_loader import load_metrics_manifest, parse_metrics, select_profile
from .runtime.analytics import AnalyticsEngine
from .runtime.context import CancellationToken, ExecutionContext, RunControl
from .runtime.handler_registry import HandlerRegistry
from .runtime.metrics_collector import MetricsCollector
from .runtime.planner import PhasePlanner
from .runtime.report_builder import ReportBuilder
from .runtime.resource_guard import ResourceGuard
from .runtime.retry import Clock, RetryController, Sleep, epoch_ms
from .runtime.scheduler import ExecutionScheduler
from .schemas import (
    Event,
    EventType,
    ExecutionReport,
    ExecutionStrategy,
    MetricSample,
    RunStatus,
    TaskStatus,
    Workflow,
)
from .strategy_loader import get_default_strategy, load_strategy
from .telemetry import EventListener, TelemetryBus

logger = logging.getLogger(__name__)

# Retention for the engine-owned event log and metric samples; oldest dropped first.
DEFAULT_MAX_EVENTS = 10_000
DEFAULT_MAX_SAMPLES = 10_000


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class WorkflowEngine:
    """Plans and executes workflows against registered task handlers.

    One engine may run several different workflows concurrently on the same
    event loop; a given workflow_id may only have one active run. Reports are
    kept per workflow_id (the latest run wins).

    The event log and metric samples of an engine-built bus and collector are
    capped at DEFAULT_MAX_EVENTS and DEFAULT_MAX_SAMPLES; ``clear_events``
    empties the log sooner. A bus or collector passed in keeps its own limits.
    """

    def __init__(
        self,
        strategy: Optional[ExecutionStrategy] = None,
        handlers: Any = None,
        telemetry: Optional[TelemetryBus] = None,
        resource_guard: Optional[ResourceGuard] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.strategy = strategy or get_default_strategy()
        self.handlers = HandlerRegistry.coerce(handlers)
        self.metrics_collector = metrics_collector or MetricsCollector(max_samples=DEFAULT_MAX_SAMPLES)
        self.telemetry = telemetry or TelemetryBus(
            metrics_collector=self.metrics_collector, max_events=DEFAULT_MAX_EVENTS,
        )
        if self.telemetry.metrics_collector is None:
            self.telemetry.metrics_collector = self.metrics_collector
        self.resource_guard = resource_guard or ResourceGuard(telemetry=self.telemetry)
        self.analytics = AnalyticsEngine(telemetry=self.telemetry)
        self.clock = clock or epoch_ms
        self.sleep = sleep
        self.reports: Dict[str, ExecutionReport] = {}
        self._active: Dict[str, Tuple[Workflow, RunControl]] = {}

    @classmethod
    def from_config_dir(
        cls,
        config_dir: str,
        handlers: Any = None,
        environ: Optional[Mapping[str, str]] = None,
        metrics_profile: Optional[str] = None,
        **kwargs: Any,
    ) -> WorkflowEngine:
        """Build an engine from strategy.yaml and metrics.yaml in ``config_dir``.

        Both files are optional. WORKFLOW_ENGINE_* environment variables
        override the strategy file.

        Raises:
            ManifestLoadError: If a manifest is not valid YAML.
            ValueError: If a manifest holds invalid values.
        """
        if not os.path.isdir(config_dir):
            raise ValueError(f"Config directory not found: {config_dir}")
        strategy = load_strategy(config_dir, environ)
        profile = select_profile(parse_metrics(load_metrics_manifest(config_dir)), metrics_profile)
        logger.info("Loaded strategy from %s (mode=%s)", config_dir, strategy.mode.value)
        return cls(
            strategy=strategy,
            handlers=handlers,
            metrics_collector=MetricsCollector(profile, max_samples=DEFAULT_MAX_SAMPLES),
            **kwargs,
        )

    # Execution

    async def execute_workflow(
        self,
        workflow: Workflow,
        context: Optional[ExecutionContext] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ExecutionReport:
        """Validate, plan and run ``workflow``.

        Returns:
            The frozen report. Aborted (critical failure) and cancelled runs
            also return a report, with ``success`` False.

        Raises:
            ValidationError: If the workflow is malformed or a task has no
                handler. Nothing runs; ``exc.report`` holds the failed report.
            CycleError: If the dependencies contain a cycle. Nothing runs;
                ``exc.report`` holds the failed report.
            WorkflowEngineError: If the workflow_id already has an active run.
        """
        workflow_id = workflow.workflow_id
        if workflow_id in self._active:
            raise WorkflowEngineError(f"Workflow already running: {workflow_id}")

        strategy = self.strategy
        start_time = self.clock()
        builder = ReportBuilder(workflow, strategy, start_time)

        try:
            validate_workflow(workflow)
            detect_cycles(TaskGraph.from_workflow(workflow))
            missing = self.handlers.missing(workflow.tasks)
            if missing:
                raise ValidationError(f"No handler registered for tasks: {', '.join(missing)}", task_id=missing[0])
            plan = PhasePlanner(strategy).plan(workflow)
        except (ValidationError, CycleError) as exc:
            logger.error("Workflow %s rejected: %s", workflow_id, exc)
            builder.record_error(getattr(exc, "task_id", None) or workflow_id, str(exc), self.clock())
            exc.report = builder.build(RunStatus.FAILED, False, self.clock())
            self.reports[workflow_id] = exc.report
            self.telemetry.workflow_failed(workflow_id, exc, RunStatus.FAILED.value)
            raise

        token = cancellation or (context.cancellation if context else CancellationToken())
        control = RunControl(workflow_id, token)
        run_context = dataclasses.replace(
            context or ExecutionContext(),
            workflow_id=workflow_id,
            cancellation=token,
            progress_callback=lambda task_id, progress, message: self.telemetry.task_progress(
                workflow_id, task_id, progress, message,
            ),
        )
        retry_controller = RetryController(
            strategy,
            resource_guard=self.resource_guard,
            telemetry=self.telemetry,
            clock=self.clock,
            sleep=self.sleep,
        )
        scheduler = ExecutionScheduler(
            strategy,
            self.handlers,
            retry_controller,
            builder,
            run_context,
            control,
            telemetry=self.telemetry,
            resource_guard=self.resource_guard,
        )

        logger.info(
            "Starting workflow %s (%s): %d tasks in %d phases, mode=%s",
            workflow.name, workflow_id, len(workflow.tasks), len(plan.phases), strategy.mode.value,
        )
        self._active[workflow_id] = (workflow, control)
        self.telemetry.workflow_started(workflow_id, workflow.name, len(workflow.tasks), strategy.mode.value)

        status = RunStatus.COMPLETED
        failure: Optional[CriticalTaskFailure] = None
        try:
            await scheduler.run(workflow, plan)
        except CriticalTaskFailure as exc:
            status = RunStatus.ABORTED
            failure = exc
            logger.error("Workflow %s aborted: %s", workflow_id, exc)
        except WorkflowCancelledError:
            status = RunStatus.CANCELLED
            logger.info("Workflow %s cancelled", workflow_id)
        finally:
            control.close()
            self._active.pop(workflow_id, None)

        end_time = self.clock()
        summary = self.analytics.analyze(
            workflow,
            strategy,
            builder.results,
            builder.statistics,
            end_time - start_time,
            status=status,
            failed_task_id=failure.task_id if failure else None,
        )
        builder.set_analysis(summary.critical_path, summary.critical_path_duration, summary.parallelization_score)
        builder.add_insights(summary.insights)

        # With stop_on_critical_failure off, critical failures count as partial success.
        critical_failed = strategy.failure_handling.stop_on_critical_failure and any(
            result.status == TaskStatus.FAILED and workflow.get_task(task_id).critical
            for task_id, result in builder.results.items()
        )
        success = status == RunStatus.COMPLETED and not critical_failed
        report = builder.build(status, success, end_time)
        self.reports[workflow_id] = report

        if status == RunStatus.COMPLETED:
            self.telemetry.workflow_completed(
                workflow_id, success, report.duration, report.statistics.model_dump(mode="json"),
            )
        elif status == RunStatus.ABORTED:
            self.telemetry.workflow_failed(workflow_id, failure, status.value)
        else:
            self.telemetry.workflow_cancelled(workflow_id)

        logger.info(
            "Workflow %s finished: status=%s success=%s duration=%.0fms",
            workflow_id, status.value, success, report.duration,
        )
        return report

    def run(
        self,
        workflow: Workflow,
        context: Optional[ExecutionContext] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ExecutionReport:
        """Synchronous wrapper around ``execute_workflow`` (starts its own event loop)."""
        return asyncio.run(self.execute_workflow(workflow, context=context, cancellation=cancellation))

    # Run control

    def pause_workflow(self, workflow_id: str) -> bool:
        """Pause an active run at its next checkpoint.

        Returns:
            True if the run was paused, False if it is unknown or already paused.
        """
        entry = self._active.get(workflow_id)
        if entry is None or not entry[1].pause():
            return False
        logger.info("Pausing workflow: %s (%s)", entry[0].name, workflow_id)
        self.telemetry.workflow_paused(workflow_id)
        return True

    def resume_workflow(self, workflow_id: str) -> bool:
        entry = self._active.get(workflow_id)
        if entry is None or not entry[1].resume():
            return False
        logger.info("Resuming workflow: %s (%s)", entry[0].name, workflow_id)
        self.telemetry.workflow_resumed(workflow_id)
        return True

    def cancel_workflow(self, workflow_id: str) -> bool:
        """Cancel an active run. No new tasks or retries start afterwards.

        Returns:
            True if a run was signalled, False if the workflow is not active.
        """
        entry = self._active.get(workflow_id)
        if entry is None:
            return False
        logger.info("Cancelling workflow: %s (%s)", entry[0].name, workflow_id)
        entry[1].cancel()
        return True

    # Queries

    def get_execution_report(self, workflow_id: str) -> Optional[ExecutionReport]:
        return self.reports.get(workflow_id)

    def get_active_workflows(self) -> List[Workflow]:
        return [workflow for workflow, _ in self._active.values()]

    def update_strategy(self, strategy: Optional[ExecutionStrategy] = None, **overrides: Any) -> ExecutionStrategy:
        """Replace the strategy, or override some of its fields.

        Nested sections merge: ``update_strategy(retry={"max_attempts": 1})``
        keeps the other retry settings. Active runs keep their snapshot.

        Raises:
            pydantic.ValidationError: If the overrides are invalid.
        """
        base = strategy or self.strategy
        if overrides:
            base = ExecutionStrategy.model_validate(_merge(base.model_dump(), overrides))
        self.strategy = base
        logger.debug("Workflow strategy updated: %s", self.strategy.model_dump(mode="json"))
        return self.strategy

    # Observability

    def subscribe(self, listener: EventListener, event_types: Optional[List[EventType]] = None):
        """Register an event listener; returns a callable that unsubscribes it."""
        return self.telemetry.subscribe(listener, event_types)

    def get_events(self) -> List[Event]:
        return self.telemetry.events.copy()

    def get_events_by_type(self, event_type: EventType) -> List[Event]:
        return self.telemetry.events_of(event_type)

    def get_events_by_task(self, task_id: str) -> List[Event]:
        return [e for e in self.telemetry.events if e.task_id == task_id]

    def clear_events(self) -> None:
        self.telemetry.events.clear()

    def get_metrics(self) -> List[MetricSample]:
        return self.telemetry.get_metrics()
