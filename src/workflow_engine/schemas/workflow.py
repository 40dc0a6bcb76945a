"""Workflow and execution plan schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field

from .base import FrozenSchema, SchemaBase
from .task import Task


class Workflow(FrozenSchema):
    """A named graph of tasks submitted as one unit of planning and execution.

    Dependency edges live on the tasks themselves (``Task.dependencies``). A
    valid workflow has at least one task, unique task IDs, only resolvable
    dependency references, and no dependency cycles; these invariants are
    checked by ``workflow_engine.dag.validate_workflow`` and
    ``workflow_engine.dag.detect_cycles`` rather than at construction time, so
    that malformed workflows surface as engine errors.

    Fields:
        workflow_id: Unique identifier; also the key for stored reports.
        name: Human-readable name.
        description: Optional description.
        tasks: Ordered task list. Order is the tie-breaker for planning.
    """

    workflow_id: str = Field(..., min_length=1)
    name: str
    description: str = Field(default="")
    tasks: List[Task] = Field(default_factory=list)

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None

    def task_map(self) -> Dict[str, Task]:
        return {task.task_id: task for task in self.tasks}


class Phase(SchemaBase):
    """A batch of tasks whose dependencies are satisfied by earlier phases."""

    index: int
    task_ids: List[str] = Field(default_factory=list)


class ExecutionPlan(SchemaBase):
    """Ordered phases produced by the phase planner.

    Invariants:
    - every workflow task appears in exactly one phase
    - every dependency of a task lies in a strictly earlier phase
    """

    workflow_id: str
    phases: List[Phase] = Field(default_factory=list)

    def phase_of(self, task_id: str) -> Optional[int]:
        """Return the index of the phase containing ``task_id``."""
        for phase in self.phases:
            if task_id in phase.task_ids:
                return phase.index
        return None

    def task_ids(self) -> List[str]:
        return [task_id for phase in self.phases for task_id in phase.task_ids]
