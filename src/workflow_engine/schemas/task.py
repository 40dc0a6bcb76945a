"""Task schemas."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from .base import FrozenSchema


class TaskPriority(str, Enum):
    """Scheduling priority for a task.

    Only consulted in ``priority_first`` mode, where ready tasks inside a phase
    are ordered by descending rank before dispatch.
    """

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: Dict[TaskPriority, int] = {
    TaskPriority.CRITICAL: 4,
    TaskPriority.HIGH: 3,
    TaskPriority.NORMAL: 2,
    TaskPriority.LOW: 1,
}


class TaskStatus(str, Enum):
    """Terminal state of a task within one workflow run.

    - COMPLETED: A handler attempt succeeded.
    - FAILED: Every permitted attempt failed.
    - SKIPPED: Never dispatched because a dependency did not complete.
    - CANCELLED: The run was cancelled before the task could finish retrying.
    """

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class Task(FrozenSchema):
    """A unit of work inside a workflow.

    Tasks are caller-owned, immutable inputs. What a task actually does is
    supplied separately by a task handler (see ``HandlerRegistry``); the task
    itself only carries the scheduling facts the engine needs.

    Fields:
        task_id: Identifier, unique within its workflow.
        name: Human-readable name used in logs and insights.
        description: Optional longer description.
        category: Free-form kind of work (e.g. "analysis", "testing"); used for
            category-level handler lookup.
        dependencies: IDs of tasks that must reach a terminal state first.
        priority: Scheduling priority (see TaskPriority).
        critical: If True, terminal failure of this task may abort the run.
        timeout_ms: Per-attempt timeout override in milliseconds.
        estimated_duration_ms: Duration estimate for critical-path analysis when
            no measured duration exists.
        metadata: Arbitrary caller data passed through to handlers untouched.
    """

    task_id: str = Field(..., min_length=1)
    name: str
    description: str = Field(default="")
    category: Optional[str] = Field(default=None)
    dependencies: List[str] = Field(default_factory=list)
    priority: TaskPriority = Field(default=TaskPriority.NORMAL)
    critical: bool = Field(default=False)
    timeout_ms: Optional[float] = Field(default=None, gt=0)
    estimated_duration_ms: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("dependencies")
    @classmethod
    def _dedupe_dependencies(cls, value: List[str]) -> List[str]:
        # Dependencies are a set; keep first-seen order for deterministic traversal.
        return list(dict.fromkeys(value))
