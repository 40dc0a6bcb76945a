"""Directed Acyclic Graph (DAG) over workflow tasks.

Provides a dedicated graph class with adjacency structures for dependency
lookups, plus the structural checks a workflow must pass before planning:
``validate_workflow`` (non-empty, unique IDs, resolvable dependencies) and
``detect_cycles`` (explicit cycle paths via depth-first search).
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Set, Tuple

from .exceptions import CycleError, ValidationError
from .schemas import Task, Workflow

DEFAULT_ESTIMATED_DURATION_MS = 1000.0


class TaskGraph:
    """Dependency graph for one workflow.

    Edges run from a task to each of its dependencies. The graph maintains:
    - tasks: Dictionary mapping task_id to Task objects (workflow order)
    - dependencies: task_id -> list of task IDs it depends on
    - dependents: task_id -> list of task IDs that depend on it

    The constructor does not validate; call ``validate_workflow`` first if the
    workflow may reference unknown tasks.
    """

    def __init__(self, tasks: List[Task]):
        self.tasks: Dict[str, Task] = {task.task_id: task for task in tasks}
        self.dependencies: Dict[str, List[str]] = {
            task.task_id: list(task.dependencies) for task in tasks
        }
        self.dependents = self._build_dependents()

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> TaskGraph:
        return cls(workflow.tasks)

    def _build_dependents(self) -> Dict[str, List[str]]:
        """Build reverse adjacency: task_id -> tasks that list it as a dependency."""
        dependents: Dict[str, List[str]] = {task_id: [] for task_id in self.tasks}
        for task_id, deps in self.dependencies.items():
            for dep_id in deps:
                if dep_id in dependents:
                    dependents[dep_id].append(task_id)
        return dependents

    def get_task(self, task_id: str) -> Task:
        """Get task by ID.

        Raises:
            KeyError: If the task ID does not exist in the graph.
        """
        if task_id not in self.tasks:
            raise KeyError(f"Task {task_id} not found in graph")
        return self.tasks[task_id]

    def leaves(self) -> List[str]:
        """Tasks that no other task depends on, in workflow order."""
        return [task_id for task_id, deps in self.dependents.items() if not deps]

    def find_cycles(self) -> List[List[str]]:
        """Find dependency cycles using DFS with a recursion stack.

        Each cycle is reported once, as the first one reachable from an
        unvisited task, in the form ``[a, b, c, a]`` (a depends on b, b on c,
        c on a).
        """
        visited: Set[str] = set()
        stack: Set[str] = set()
        cycles: List[List[str]] = []

        def visit(task_id: str, path: List[str]) -> Optional[List[str]]:
            if task_id in stack:
                start = path.index(task_id)
                return path[start:] + [task_id]
            if task_id in visited:
                return None
            visited.add(task_id)
            stack.add(task_id)
            for dep_id in self.dependencies.get(task_id, []):
                cycle = visit(dep_id, path + [task_id])
                if cycle:
                    return cycle
            stack.discard(task_id)
            return None

        for task_id in self.tasks:
            if task_id not in visited:
                stack.clear()
                cycle = visit(task_id, [])
                if cycle:
                    cycles.append(cycle)
        return cycles

    def connected_components(self) -> List[List[str]]:
        """Partition tasks into weakly-connected components.

        Dependency and dependent edges are treated symmetrically.
        """
        seen: Set[str] = set()
        components: List[List[str]] = []
        for root in self.tasks:
            if root in seen:
                continue
            component: List[str] = []
            pending = [root]
            while pending:
                task_id = pending.pop()
                if task_id in seen:
                    continue
                seen.add(task_id)
                component.append(task_id)
                for neighbour in self.dependencies.get(task_id, []) + self.dependents.get(task_id, []):
                    if neighbour in self.tasks and neighbour not in seen:
                        pending.append(neighbour)
            components.append(component)
        return components

    def longest_path(self, weights: Mapping[str, float]) -> Tuple[List[str], float]:
        """Heaviest dependency chain ending at a leaf task.

        Args:
            weights: task_id -> weight. Tasks missing from the mapping use their
                ``estimated_duration_ms`` or DEFAULT_ESTIMATED_DURATION_MS.

        Returns:
            (path from root to leaf, total weight). Ties keep the first path
            found in workflow order. Requires an acyclic graph.
        """
        memo: Dict[str, Tuple[List[str], float]] = {}

        def weight_of(task_id: str) -> float:
            if task_id in weights:
                return weights[task_id]
            estimate = self.tasks[task_id].estimated_duration_ms
            return estimate if estimate is not None else DEFAULT_ESTIMATED_DURATION_MS

        def heaviest_to(task_id: str) -> Tuple[List[str], float]:
            if task_id in memo:
                return memo[task_id]
            best_path: List[str] = []
            best_weight = 0.0
            for dep_id in self.dependencies.get(task_id, []):
                if dep_id not in self.tasks:
                    continue
                path, total = heaviest_to(dep_id)
                if total > best_weight:
                    best_path, best_weight = path, total
            memo[task_id] = (best_path + [task_id], best_weight + weight_of(task_id))
            return memo[task_id]

        critical: Tuple[List[str], float] = ([], 0.0)
        for leaf in self.leaves():
            path, total = heaviest_to(leaf)
            if total > critical[1]:
                critical = (path, total)
        return critical


def validate_workflow(workflow: Workflow) -> None:
    """Validate workflow structure.

    Raises:
        ValidationError: If the workflow has no tasks, two tasks share an ID,
            or a dependency references a task not in the workflow.
    """
    if not workflow.tasks:
        raise ValidationError("Workflow must contain at least one task")

    task_ids: Set[str] = set()
    for task in workflow.tasks:
        if task.task_id in task_ids:
            raise ValidationError(f"Duplicate task ID: {task.task_id}", task_id=task.task_id)
        task_ids.add(task.task_id)

    for task in workflow.tasks:
        for dep_id in task.dependencies:
            if dep_id not in task_ids:
                raise ValidationError(
                    f"Task {task.task_id} depends on non-existent task: {dep_id}",
                    task_id=task.task_id,
                )


def detect_cycles(graph: TaskGraph) -> None:
    """Raise CycleError if the graph contains any dependency cycle."""
    cycles = graph.find_cycles()
    if cycles:
        paths = ", ".join(" -> ".join(cycle) for cycle in cycles)
        raise CycleError(f"Circular dependencies detected: {paths}", cycles=cycles)
