"""Tests for workflow validation, cycle detection and graph queries."""

import pytest

from workflow_engine.dag import TaskGraph, detect_cycles, validate_workflow
from workflow_engine.exceptions import CycleError, ValidationError
from tests.helpers.workflows import make_task, make_workflow


def test_valid_workflow_passes() -> None:
    workflow = make_workflow(make_task("a"), make_task("b", "a"), make_task("c", "a", "b"))

    # Should not raise
    validate_workflow(workflow)
    detect_cycles(TaskGraph.from_workflow(workflow))


def test_empty_workflow_fails() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_workflow(make_workflow())
    assert "at least one task" in str(exc.value)


def test_duplicate_task_id_fails() -> None:
    workflow = make_workflow(make_task("a"), make_task("a"))

    with pytest.raises(ValidationError) as exc:
        validate_workflow(workflow)
    assert str(exc.value) == "Duplicate task ID: a"
    assert exc.value.task_id == "a"


def test_unknown_dependency_fails() -> None:
    workflow = make_workflow(make_task("a"), make_task("b", "ghost"))

    with pytest.raises(ValidationError) as exc:
        validate_workflow(workflow)
    assert str(exc.value) == "Task b depends on non-existent task: ghost"


def test_two_task_cycle_is_reported_with_path() -> None:
    workflow = make_workflow(make_task("a", "b"), make_task("b", "a"))
    validate_workflow(workflow)

    with pytest.raises(CycleError) as exc:
        detect_cycles(TaskGraph.from_workflow(workflow))
    assert exc.value.cycles == [["a", "b", "a"]]
    assert "a -> b -> a" in str(exc.value)


def test_self_dependency_is_a_cycle() -> None:
    workflow = make_workflow(make_task("solo", "solo"))

    with pytest.raises(CycleError) as exc:
        detect_cycles(TaskGraph.from_workflow(workflow))
    assert exc.value.paths == ["solo -> solo"]


def test_cycle_behind_acyclic_prefix() -> None:
    workflow = make_workflow(
        make_task("start"),
        make_task("x", "start", "z"),
        make_task("y", "x"),
        make_task("z", "y"),
    )

    cycles = TaskGraph.from_workflow(workflow).find_cycles()
    assert cycles == [["x", "z", "y", "x"]]


def test_duplicate_dependencies_are_collapsed() -> None:
    task = make_task("b", "a", "a")
    assert task.dependencies == ["a"]


class TestTaskGraph:
    """Adjacency queries used by the planner and analytics."""

    def test_dependents_and_leaves(self):
        graph = TaskGraph.from_workflow(make_workflow(
            make_task("a"), make_task("b", "a"), make_task("c", "a"),
        ))
        assert graph.dependents["a"] == ["b", "c"]
        assert graph.leaves() == ["b", "c"]

    def test_get_task_unknown_raises(self):
        graph = TaskGraph.from_workflow(make_workflow(make_task("a")))
        with pytest.raises(KeyError):
            graph.get_task("missing")

    def test_connected_components_are_weak(self):
        graph = TaskGraph.from_workflow(make_workflow(
            make_task("a"), make_task("b"), make_task("c", "a", "b"), make_task("d"),
        ))
        components = sorted(sorted(component) for component in graph.connected_components())
        assert components == [["a", "b", "c"], ["d"]]

    def test_longest_path_uses_weights_then_estimates(self):
        graph = TaskGraph.from_workflow(make_workflow(
            make_task("a", estimated_duration_ms=1000),
            make_task("b", "a", estimated_duration_ms=3000),
            make_task("c", "a", estimated_duration_ms=500),
        ))
        assert graph.longest_path({}) == (["a", "b"], 4000.0)
        assert graph.longest_path({"c": 5000.0}) == (["a", "c"], 6000.0)

    def test_longest_path_defaults_to_one_second(self):
        graph = TaskGraph.from_workflow(make_workflow(make_task("a"), make_task("b", "a")))
        assert graph.longest_path({}) == (["a", "b"], 2000.0)
