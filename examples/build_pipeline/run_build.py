"""Runnable example for the Workflow Engine.

A small release pipeline: checkout -> (lint, unit_tests, docs) -> package ->
publish. Handlers are deterministic stand-ins; ``--flaky`` makes unit_tests
fail twice before passing so the retry backoff shows up in the report, and
``--break-package`` makes the critical package task fail.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from workflow_engine import (
    ExecutionReport,
    HandlerRegistry,
    Task,
    TaskPriority,
    Workflow,
    WorkflowEngine,
)

CONFIG_DIR = Path(__file__).resolve().parent / "config"


def build_workflow() -> Workflow:
    return Workflow(
        workflow_id="release",
        name="Release",
        tasks=[
            Task(task_id="checkout", name="Checkout", category="vcs", priority=TaskPriority.HIGH),
            Task(task_id="lint", name="Lint", category="check", dependencies=["checkout"]),
            Task(task_id="unit_tests", name="Unit tests", category="check", dependencies=["checkout"],
                 estimated_duration_ms=4000),
            Task(task_id="docs", name="Docs", category="docs", dependencies=["checkout"],
                 priority=TaskPriority.LOW),
            Task(task_id="package", name="Package", dependencies=["lint", "unit_tests"], critical=True),
            Task(task_id="publish", name="Publish", dependencies=["package", "docs"], timeout_ms=5000),
        ],
    )


def build_handlers(flaky: bool, break_package: bool) -> HandlerRegistry:
    attempts = {"unit_tests": 0}

    def checkout(task, context):
        context.shared_state["revision"] = "4f2c9e1"
        return {"output": context.shared_state["revision"], "artifacts": ["src.tar"]}

    async def check(task, context):
        for step in range(1, 5):
            await asyncio.sleep(0.01)
            context.report_progress(task.task_id, step * 25, f"{task.name}: step {step}/4")
        if task.task_id == "unit_tests" and flaky:
            attempts["unit_tests"] += 1
            if attempts["unit_tests"] < 3:
                raise RuntimeError("flaky test runner")
        return "ok"

    def docs(task, context):
        return {"output": "html", "artifacts": ["docs/index.html"]}

    def package(task, context):
        if break_package:
            raise RuntimeError("setup.cfg is missing")
        return {"output": "release.whl", "artifacts": ["dist/release.whl"], "memory_used": 12.5}

    def publish(task, context):
        context.logger.info("Publishing revision %s", context.shared_state["revision"])
        return "published"

    registry = HandlerRegistry()
    registry.register("checkout", checkout)
    registry.register_category("check", check)
    registry.register_category("docs", docs)
    registry.register("package", package)
    registry.register("publish", publish)
    return registry


def print_report(report: ExecutionReport) -> None:
    stats = report.statistics
    print(f"{report.workflow.name}: {report.status.value} (success={report.success}) in {report.duration:.0f}ms")
    print(f"  completed={stats.completed_tasks} failed={stats.failed_tasks} skipped={stats.skipped_tasks} "
          f"retries={stats.total_retries} parallel_phases={stats.parallel_executions}")
    for task_id, result in report.task_results.items():
        detail = f" ({result.error})" if result.error else ""
        print(f"  - {task_id}: {result.status.value}{detail}")
    print(f"  critical path: {' -> '.join(report.critical_path)}")
    print(f"  artifacts: {', '.join(report.artifacts) or '-'}")
    for insight in report.insights:
        print(f"  [{insight.impact.value}] {insight.message}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the example release workflow")
    parser.add_argument("--flaky", action="store_true", help="make unit tests fail twice before passing")
    parser.add_argument("--break-package", action="store_true", help="make the critical package task fail")
    parser.add_argument("--json", action="store_true", help="print the report as JSON")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = WorkflowEngine.from_config_dir(
        str(CONFIG_DIR),
        handlers=build_handlers(args.flaky, args.break_package),
    )
    report = engine.run(build_workflow())
    if args.json:
        print(report.to_json(indent=2))
    else:
        print_report(report)


if __name__ == "__main__":
    main()
