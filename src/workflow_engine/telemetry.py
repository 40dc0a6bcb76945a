"""Telemetry/event bus.

The bus is a one-way notification channel: the engine emits typed events and
any number of listeners (UI, logging, metrics) observe them. Listeners cannot
influence execution; their exceptions are logged and dropped unless the bus
is ``strict``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from workflow_engine.schemas import Event, EventType, MetricSample

if TYPE_CHECKING:
    from workflow_engine.runtime.metrics_collector import MetricsCollector

logger = logging.getLogger(__name__)

EventListener = Callable[[Event], None]


def _now_iso() -> str:
    """Generate ISO-8601 timestamp."""
    return datetime.now(ZoneInfo("UTC")).isoformat()


@dataclass
class TelemetryBus:
    events: List[Event] = field(default_factory=list)
    strict: bool = False
    metrics_collector: Optional[MetricsCollector] = field(default=None)
    max_events: Optional[int] = None

    def __post_init__(self):
        self._listeners: List[Tuple[EventListener, Optional[frozenset]]] = []
        self._sequence = 0

    def subscribe(
        self,
        listener: EventListener,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> Callable[[], None]:
        """Register a listener, optionally filtered to some event types.

        Returns:
            A callable that removes the listener again.
        """
        entry = (listener, frozenset(event_types) if event_types is not None else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: Event) -> None:
        """Record the event and dispatch it to every matching listener."""
        self.events.append(event)
        if self.max_events is not None and len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]

        for listener, types in list(self._listeners):
            if types is not None and event.type not in types:
                continue
            try:
                listener(event)
            except Exception:
                if self.strict:
                    raise
                logger.exception("Event listener failed on %s", event.type.value)

    def _event(
        self,
        event_type: EventType,
        workflow_id: Optional[str],
        task_id: Optional[str] = None,
        **payload: Any,
    ) -> None:
        self._sequence += 1
        self.emit(Event(
            event_id=f"{event_type.value}-{self._sequence}",
            type=event_type,
            workflow_id=workflow_id,
            task_id=task_id,
            timestamp=_now_iso(),
            payload=payload,
        ))

    def events_of(self, event_type: EventType) -> List[Event]:
        return [event for event in self.events if event.type == event_type]

    # Workflow Events
    def workflow_started(self, workflow_id: str, name: str, task_count: int, mode: str) -> None:
        self._event(EventType.WORKFLOW_STARTED, workflow_id, name=name, task_count=task_count, mode=mode)

    def workflow_completed(self, workflow_id: str, success: bool, duration_ms: float, statistics: Dict[str, Any]) -> None:
        self._event(
            EventType.WORKFLOW_COMPLETED,
            workflow_id,
            success=success,
            duration_ms=duration_ms,
            statistics=statistics,
        )
        if self.metrics_collector:
            self.metrics_collector.record_timer(
                "workflow_total_duration",
                duration_ms,
                tags={"workflow_id": workflow_id, "success": str(success).lower()},
            )

    def workflow_failed(self, workflow_id: str, error: Any, status: str) -> None:
        self._event(EventType.WORKFLOW_FAILED, workflow_id, error=str(error), status=status)

    def workflow_paused(self, workflow_id: str) -> None:
        self._event(EventType.WORKFLOW_PAUSED, workflow_id)

    def workflow_resumed(self, workflow_id: str) -> None:
        self._event(EventType.WORKFLOW_RESUMED, workflow_id)

    def workflow_cancelled(self, workflow_id: str) -> None:
        self._event(EventType.WORKFLOW_CANCELLED, workflow_id)

    # Task Events
    def task_started(self, workflow_id: str, task_id: str, name: str, phase: int) -> None:
        self._event(EventType.TASK_STARTED, workflow_id, task_id, name=name, phase=phase)

    def task_progress(self, workflow_id: Optional[str], task_id: str, progress: float, message: Optional[str] = None) -> None:
        self._event(EventType.TASK_PROGRESS, workflow_id, task_id, progress=progress, message=message)

    def task_completed(self, workflow_id: str, task_id: str, duration_ms: float, retry_count: int) -> None:
        self._event(
            EventType.TASK_COMPLETED,
            workflow_id,
            task_id,
            duration_ms=duration_ms,
            retry_count=retry_count,
        )
        if self.metrics_collector:
            self.metrics_collector.record_timer(
                "task_execution_duration",
                duration_ms,
                tags={"workflow_id": workflow_id, "task_id": task_id, "status": "completed"},
            )

    def task_failed(self, workflow_id: str, task_id: str, error: Any, error_type: Optional[str], retry_count: int) -> None:
        self._event(
            EventType.TASK_FAILED,
            workflow_id,
            task_id,
            error=str(error),
            error_type=error_type,
            retry_count=retry_count,
        )

    def task_retrying(self, workflow_id: str, task_id: str, error: Any, retry_count: int, delay_ms: float) -> None:
        self._event(
            EventType.TASK_RETRYING,
            workflow_id,
            task_id,
            error=str(error),
            retry_count=retry_count,
            delay_ms=delay_ms,
        )
        if self.metrics_collector:
            self.metrics_collector.record_counter(
                "task_retry_count",
                tags={"workflow_id": workflow_id, "task_id": task_id},
            )

    def task_skipped(self, workflow_id: str, task_id: str, reason: str) -> None:
        self._event(EventType.TASK_SKIPPED, workflow_id, task_id, reason=reason)

    # Graph / Resource / Analysis Events
    def dependency_resolved(self, workflow_id: str, task_id: str, dependencies: List[str]) -> None:
        self._event(EventType.DEPENDENCY_RESOLVED, workflow_id, task_id, dependencies=list(dependencies))

    def resource_constraint(
        self,
        workflow_id: Optional[str],
        task_id: Optional[str],
        resource: str,
        usage: float,
        limit: float,
        advisory: bool = False,
    ) -> None:
        self._event(
            EventType.RESOURCE_CONSTRAINT,
            workflow_id,
            task_id,
            type=resource,
            usage=usage,
            limit=limit,
            advisory=advisory,
        )
        if self.metrics_collector:
            self.metrics_collector.record_counter(
                "resource_constraint_count",
                tags={"resource": resource, "advisory": str(advisory).lower()},
            )

    def performance_warning(self, workflow_id: str, message: str, suggestion: Optional[str] = None) -> None:
        self._event(EventType.PERFORMANCE_WARNING, workflow_id, message=message, suggestion=suggestion)

    def get_metrics(self) -> List[MetricSample]:
        """Get all collected metrics."""
        if self.metrics_collector:
            return self.metrics_collector.get_samples()
        return []
