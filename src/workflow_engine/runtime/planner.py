"""Phase planner: layers a validated workflow into execution phases."""

from __future__ import annotations

import logging
from typing import List, Set

from workflow_engine.exceptions import CycleError
from workflow_engine.schemas import ExecutionMode, ExecutionPlan, ExecutionStrategy, Phase, Task, Workflow

logger = logging.getLogger(__name__)


class PhasePlanner:
    """Group tasks into phases whose dependencies all lie in earlier phases.

    Each scan collects every unplaced task whose dependencies are already
    placed, in workflow order. In ``priority_first`` mode the ready tasks are
    then stably sorted by descending priority rank, so equal-priority tasks
    keep workflow order.
    """

    def __init__(self, strategy: ExecutionStrategy):
        self.strategy = strategy

    def plan(self, workflow: Workflow) -> ExecutionPlan:
        """Build the execution plan for ``workflow``.

        Raises:
            CycleError: If a scan finds no ready task while tasks remain. The
                error lists the task IDs that could not be placed.
        """
        placed: Set[str] = set()
        remaining: List[Task] = list(workflow.tasks)
        phases: List[Phase] = []

        while remaining:
            ready = [task for task in remaining if all(dep in placed for dep in task.dependencies)]
            if not ready:
                unresolved = [task.task_id for task in remaining]
                raise CycleError(
                    f"Circular dependencies detected: unable to schedule {', '.join(unresolved)}",
                    unresolved=unresolved,
                )

            if self.strategy.mode == ExecutionMode.PRIORITY_FIRST:
                ready.sort(key=lambda task: task.priority.rank, reverse=True)

            phases.append(Phase(index=len(phases), task_ids=[task.task_id for task in ready]))
            # Tasks in the same scan must not see each other as placed
            placed.update(task.task_id for task in ready)
            ready_ids = {task.task_id for task in ready}
            remaining = [task for task in remaining if task.task_id not in ready_ids]

        logger.debug("Planned workflow %s into %d phases", workflow.workflow_id, len(phases))
        return ExecutionPlan(workflow_id=workflow.workflow_id, phases=phases)
