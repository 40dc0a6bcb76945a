"""Tests for post-run analytics and insights."""

import pytest

from workflow_engine.runtime import AnalyticsEngine, ReportBuilder
from workflow_engine.schemas import (
    EventType,
    ExecutionStrategy,
    InsightImpact,
    InsightType,
    RunStatus,
    TaskExecutionResult,
    TaskMetrics,
    TaskStatus,
)
from workflow_engine.telemetry import TelemetryBus
from tests.helpers.workflows import make_task, make_workflow


def _result(task_id, status=TaskStatus.COMPLETED, duration=100.0, memory=0.0, retries=0):
    return TaskExecutionResult(
        task_id=task_id,
        status=status,
        success=status == TaskStatus.COMPLETED,
        error=None if status == TaskStatus.COMPLETED else "failed",
        metrics=TaskMetrics(duration=duration, memory_used=memory, retry_count=retries),
    )


def _analyze(workflow, results, run_duration=1_000_000.0, status=RunStatus.COMPLETED, telemetry=None, **kwargs):
    strategy = ExecutionStrategy()
    builder = ReportBuilder(workflow, strategy, 0.0)
    for result in results:
        builder.record_result(result)
    engine = AnalyticsEngine(telemetry=telemetry)
    return engine.analyze(workflow, strategy, builder.results, builder.statistics, run_duration, status=status, **kwargs)


def _messages(summary):
    return [insight.message for insight in summary.insights]


class TestCriticalPath:
    def test_estimates_pick_heaviest_chain(self):
        workflow = make_workflow(
            make_task("a", estimated_duration_ms=1000),
            make_task("b", "a", estimated_duration_ms=3000),
            make_task("c", "a", estimated_duration_ms=500),
        )
        assert AnalyticsEngine.critical_path(workflow) == (["a", "b"], 4000.0)

    def test_measured_durations_override_estimates(self):
        workflow = make_workflow(
            make_task("a", estimated_duration_ms=1000),
            make_task("b", "a", estimated_duration_ms=3000),
            make_task("c", "a", estimated_duration_ms=500),
        )
        results = {
            "a": _result("a", duration=1000),
            "b": _result("b", duration=200),
            "c": _result("c", duration=2500),
        }
        assert AnalyticsEngine.critical_path(workflow, results) == (["a", "c"], 3500.0)

    def test_skipped_tasks_fall_back_to_estimate(self):
        workflow = make_workflow(make_task("a"), make_task("b", "a", estimated_duration_ms=700))
        results = {
            "a": _result("a", status=TaskStatus.FAILED, duration=50),
            "b": _result("b", status=TaskStatus.SKIPPED, duration=0),
        }
        assert AnalyticsEngine.critical_path(workflow, results) == (["a", "b"], 750.0)

    def test_dominant_critical_path_insight(self):
        workflow = make_workflow(make_task("a"), make_task("b", "a"))
        summary = _analyze(
            workflow,
            [_result("a", duration=1000), _result("b", duration=3000)],
            run_duration=4100,
        )

        assert summary.critical_path == ["a", "b"]
        assert summary.critical_path_duration == 4000
        assert "Critical path dominates execution time" in _messages(summary)


class TestParallelizationScore:
    def test_independent_tasks_score_one(self):
        workflow = make_workflow(make_task("a"), make_task("b"), make_task("c"), make_task("d"))
        assert AnalyticsEngine.parallelization_score(workflow) == 1.0

    def test_chain_scores_low(self):
        workflow = make_workflow(make_task("a"), make_task("b", "a"), make_task("c", "b"), make_task("d", "c"))
        assert AnalyticsEngine.parallelization_score(workflow) == 0.25

    def test_single_task_scores_zero(self):
        assert AnalyticsEngine.parallelization_score(make_workflow(make_task("a"))) == 0.0

    def test_high_score_yields_optimization_insight(self):
        workflow = make_workflow(make_task("a"), make_task("b"), make_task("c"), make_task("d"))
        summary = _analyze(workflow, [_result(t.task_id) for t in workflow.tasks])

        insight = next(i for i in summary.insights if i.message == "High parallelization potential detected")
        assert insight.type == InsightType.OPTIMIZATION
        assert insight.impact == InsightImpact.MEDIUM


class TestRateInsights:
    @staticmethod
    def _ten_tasks():
        return make_workflow(*(make_task(f"t{i}") for i in range(10)))

    def test_forty_percent_failures_is_high_impact_warning(self):
        workflow = self._ten_tasks()
        results = [
            _result(f"t{i}", status=TaskStatus.FAILED if i < 4 else TaskStatus.COMPLETED)
            for i in range(10)
        ]
        summary = _analyze(workflow, results)

        failure = [i for i in summary.insights if i.message.startswith("High failure rate")]
        assert len(failure) == 1
        assert failure[0].type == InsightType.WARNING
        assert failure[0].impact == InsightImpact.HIGH
        assert failure[0].message == "High failure rate detected (40.0%)"

    def test_ten_percent_failures_is_not_reported(self):
        workflow = self._ten_tasks()
        results = [
            _result(f"t{i}", status=TaskStatus.FAILED if i == 0 else TaskStatus.COMPLETED)
            for i in range(10)
        ]
        summary = _analyze(workflow, results)

        assert not any(message.startswith("High failure rate") for message in _messages(summary))

    def test_retry_rate_warning(self):
        workflow = self._ten_tasks()
        results = [_result(f"t{i}", retries=1 if i < 4 else 0) for i in range(10)]
        summary = _analyze(workflow, results)

        retry = next(i for i in summary.insights if i.message == "High retry rate detected")
        assert retry.impact == InsightImpact.MEDIUM

    def test_three_retried_of_ten_is_not_reported(self):
        workflow = self._ten_tasks()
        results = [_result(f"t{i}", retries=2 if i < 3 else 0) for i in range(10)]
        summary = _analyze(workflow, results)

        assert "High retry rate detected" not in _messages(summary)


class TestPerformanceInsights:
    def test_slowest_task_named_and_warned(self):
        telemetry = TelemetryBus()
        workflow = make_workflow(
            make_task("a"), make_task("b"), make_task("c"), make_task("slow", name="Slow Build"),
        )
        results = [_result("a"), _result("b"), _result("c"), _result("slow", duration=1000)]

        summary = _analyze(workflow, results, telemetry=telemetry)

        assert 'Task "Slow Build" is significantly slower than average' in _messages(summary)
        warnings = telemetry.events_of(EventType.PERFORMANCE_WARNING)
        assert any("Slow Build" in event.payload["message"] for event in warnings)

    def test_uniform_durations_have_no_slow_task(self):
        workflow = make_workflow(make_task("a"), make_task("b"))
        summary = _analyze(workflow, [_result("a"), _result("b")])

        assert not any("slower than average" in message for message in _messages(summary))

    def test_low_memory_utilization(self):
        workflow = make_workflow(make_task("a"))
        summary = _analyze(workflow, [_result("a", memory=10.0)])

        insight = next(i for i in summary.insights if i.message == "Low memory utilization detected")
        assert insight.impact == InsightImpact.LOW
        assert insight.type == InsightType.OPTIMIZATION

    def test_high_peak_memory(self):
        workflow = make_workflow(make_task("a"), make_task("b"))
        summary = _analyze(workflow, [_result("a", memory=300.0), _result("b", memory=500.0)])

        messages = _messages(summary)
        assert "High memory usage detected" in messages
        assert "Low memory utilization detected" not in messages

    def test_no_executed_tasks_skips_memory_analysis(self):
        workflow = make_workflow(make_task("a"))
        summary = _analyze(workflow, [])

        assert summary.insights == []


class TestAbortInsight:
    def test_aborted_run_names_critical_task(self):
        workflow = make_workflow(make_task("core", name="Core", critical=True))
        summary = _analyze(
            workflow,
            [_result("core", status=TaskStatus.FAILED)],
            status=RunStatus.ABORTED,
            failed_task_id="core",
        )

        error = next(i for i in summary.insights if i.type == InsightType.ERROR)
        assert error.message == "Workflow aborted: critical task Core (core) failed"
        assert error.impact == InsightImpact.HIGH

    @pytest.mark.parametrize("status", [RunStatus.COMPLETED, RunStatus.CANCELLED])
    def test_no_error_insight_otherwise(self, status):
        workflow = make_workflow(make_task("a"))
        summary = _analyze(workflow, [_result("a")], status=status)

        assert all(insight.type != InsightType.ERROR for insight in summary.insights)
