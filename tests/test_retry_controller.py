"""Tests for the retry controller and backoff policy."""

import asyncio

import pytest

from workflow_engine.exceptions import CriticalTaskFailure
from workflow_engine.runtime import ExecutionContext, HandlerResult, RetryController, compute_backoff_delay
from workflow_engine.schemas import (
    EventType,
    ExecutionStrategy,
    RetryConfig,
    TaskStatus,
)
from workflow_engine.telemetry import TelemetryBus
from tests.helpers.workflows import FakeClock, RecordingSleep, make_task, quiet_guard


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def telemetry():
    return TelemetryBus()


def _controller(clock, sleep, telemetry=None, guard=None, **strategy_fields):
    return RetryController(
        ExecutionStrategy(**strategy_fields),
        resource_guard=guard or quiet_guard(),
        telemetry=telemetry,
        clock=clock,
        sleep=sleep,
    )


def _run(controller, task, handler, context=None):
    return asyncio.run(controller.execute(task, handler, context or ExecutionContext(), "wf-test"))


class TestBackoffDelay:
    def test_exponential_growth_capped_at_max(self):
        retry = RetryConfig()
        delays = [compute_backoff_delay(retry, n) for n in range(1, 7)]
        assert delays == [1000, 2000, 4000, 8000, 16000, 30000]

    def test_multiplier_of_one_is_constant(self):
        retry = RetryConfig(backoff_multiplier=1, initial_delay_ms=250)
        assert [compute_backoff_delay(retry, n) for n in (1, 2, 3)] == [250, 250, 250]


class TestRetryController:
    """Attempt loop, timeouts and terminal results."""

    def test_always_failing_task_runs_max_attempts_plus_one(self, clock, sleep, telemetry):
        calls = []

        def handler(task, context):
            calls.append(task.task_id)
            raise RuntimeError("boom")

        controller = _controller(clock, sleep, telemetry, retry=RetryConfig(max_attempts=2))
        result = _run(controller, make_task("flaky"), handler)

        assert len(calls) == 3
        assert result.status == TaskStatus.FAILED
        assert result.success is False
        assert result.error == "boom"
        assert result.error_type == "RuntimeError"
        assert result.metrics.retry_count == 2
        assert sleep.delays == [1000, 2000]
        assert result.metrics.duration == 3000
        assert len(telemetry.events_of(EventType.TASK_RETRYING)) == 2
        assert len(telemetry.events_of(EventType.TASK_FAILED)) == 1

    def test_success_after_one_failure(self, clock, sleep, telemetry):
        attempts = {"count": 0}

        async def handler(task, context):
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise ValueError("transient")
            return "done"

        result = _run(_controller(clock, sleep, telemetry), make_task("t"), handler)

        assert result.status == TaskStatus.COMPLETED
        assert result.success is True
        assert result.output == "done"
        assert result.error is None
        assert result.metrics.retry_count == 1
        retrying = telemetry.events_of(EventType.TASK_RETRYING)
        assert [event.payload["delay_ms"] for event in retrying] == [1000]
        assert retrying[0].payload["error"] == "transient"
        assert len(telemetry.events_of(EventType.TASK_COMPLETED)) == 1

    def test_handler_result_dict_is_unpacked(self, clock, sleep):
        def handler(task, context):
            return {"output": 42, "artifacts": ["report.txt"], "memory_used": 12.5, "cpu_used": 3.0}

        result = _run(_controller(clock, sleep), make_task("t"), handler)

        assert result.output == 42
        assert result.artifacts == ["report.txt"]
        assert result.metrics.memory_used == 12.5
        assert result.metrics.cpu_used == 3.0

    def test_plain_dict_output_is_kept_whole(self, clock, sleep):
        def handler(task, context):
            return {"rows": 3}

        result = _run(_controller(clock, sleep), make_task("t"), handler)
        assert result.output == {"rows": 3}

    def test_handler_result_object(self, clock, sleep):
        async def handler(task, context):
            return HandlerResult(output="ok", artifacts=["a", "b"])

        result = _run(_controller(clock, sleep), make_task("t"), handler)
        assert result.output == "ok"
        assert result.artifacts == ["a", "b"]

    def test_timeout_is_an_attempt_failure(self, clock, sleep):
        async def handler(task, context):
            await asyncio.sleep(5)

        controller = _controller(clock, sleep, retry=RetryConfig(max_attempts=0))
        result = _run(controller, make_task("slow", timeout_ms=10), handler)

        assert result.status == TaskStatus.FAILED
        assert result.error_type == "TaskTimeoutError"
        assert result.error == "Task timeout after 10ms"
        assert sleep.delays == []

    def test_default_timeout_applies_without_override(self, clock, sleep):
        async def handler(task, context):
            await asyncio.sleep(5)

        controller = _controller(clock, sleep, default_timeout_ms=20, retry=RetryConfig(max_attempts=0))
        result = _run(controller, make_task("slow"), handler)

        assert result.error == "Task timeout after 20ms"

    def test_critical_failure_raises_with_result(self, clock, sleep):
        def handler(task, context):
            raise RuntimeError("fatal")

        controller = _controller(clock, sleep, retry=RetryConfig(max_attempts=1))
        with pytest.raises(CriticalTaskFailure) as exc:
            _run(controller, make_task("core", critical=True, name="Core"), handler)

        assert str(exc.value) == "Critical task failed: Core (core)"
        assert exc.value.result.status == TaskStatus.FAILED
        assert exc.value.result.metrics.retry_count == 1

    def test_critical_failure_without_stop_returns_result(self, clock, sleep):
        def handler(task, context):
            raise RuntimeError("fatal")

        controller = _controller(
            clock,
            sleep,
            retry=RetryConfig(max_attempts=0),
            failure_handling={"stop_on_critical_failure": False},
        )
        result = _run(controller, make_task("core", critical=True), handler)
        assert result.status == TaskStatus.FAILED

    def test_cancellation_stops_retries(self, clock, sleep):
        context = ExecutionContext()
        calls = []

        def handler(task, ctx):
            calls.append(1)
            ctx.cancellation.cancel()
            raise RuntimeError("first attempt failed")

        result = _run(_controller(clock, sleep), make_task("t"), handler, context)

        assert calls == [1]
        assert result.status == TaskStatus.CANCELLED
        assert result.error_type == "WorkflowCancelledError"
        assert result.metrics.retry_count == 0
        assert sleep.delays == []

    def test_memory_over_limit_fails_attempts_without_calling_handler(self, clock, sleep, telemetry):
        calls = []

        def handler(task, context):
            calls.append(1)

        guard = quiet_guard(telemetry, memory_mb=900.0)
        controller = _controller(clock, sleep, telemetry, guard=guard, retry=RetryConfig(max_attempts=1))
        result = _run(controller, make_task("t"), handler)

        assert calls == []
        assert result.status == TaskStatus.FAILED
        assert result.error_type == "ResourceConstraintError"
        assert len(telemetry.events_of(EventType.RESOURCE_CONSTRAINT)) == 2
