"""Registry mapping tasks to the handlers that execute them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from workflow_engine.schemas import Task

# A handler receives the task and the run's ExecutionContext. It may be a plain
# function (run in a worker thread) or a coroutine function (awaited), and
# returns a HandlerResult, a dict with HandlerResult keys, or any other value,
# which becomes the task output.
TaskHandler = Callable[[Task, Any], Any]


@dataclass
class HandlerResult:
    """Payload a handler may return to report artifacts and resource usage."""

    output: Any = None
    artifacts: List[str] = field(default_factory=list)
    memory_used: float = 0.0
    cpu_used: float = 0.0

    @classmethod
    def coerce(cls, value: Any) -> HandlerResult:
        if isinstance(value, HandlerResult):
            return value
        if isinstance(value, dict) and set(value) and set(value) <= RESULT_KEYS:
            return cls(
                output=value.get("output"),
                artifacts=list(value.get("artifacts") or []),
                memory_used=float(value.get("memory_used") or 0.0),
                cpu_used=float(value.get("cpu_used") or 0.0),
            )
        return cls(output=value)


RESULT_KEYS = frozenset({"output", "artifacts", "memory_used", "cpu_used"})


class HandlerRegistry:
    """Map task IDs and categories to handler callbacks.

    Lookup order for a task:
    1. handler registered for its task_id
    2. handler registered for its category
    3. the default handler
    """

    def __init__(self, default: Optional[TaskHandler] = None):
        self.handlers: Dict[str, TaskHandler] = {}
        self.category_handlers: Dict[str, TaskHandler] = {}
        self.default = default

    def register(self, task_id: str, handler: TaskHandler) -> None:
        """Register a handler for a specific task."""
        self.handlers[task_id] = handler

    def register_category(self, category: str, handler: TaskHandler) -> None:
        """Register a handler for every task of a category."""
        self.category_handlers[category] = handler

    def register_default(self, handler: TaskHandler) -> None:
        self.default = handler

    def resolve(self, task: Task) -> Optional[TaskHandler]:
        """Return the handler for ``task``, or None if nothing matches."""
        if task.task_id in self.handlers:
            return self.handlers[task.task_id]
        if task.category and task.category in self.category_handlers:
            return self.category_handlers[task.category]
        return self.default

    def missing(self, tasks: List[Task]) -> List[str]:
        """IDs of tasks no handler can be resolved for."""
        return [task.task_id for task in tasks if self.resolve(task) is None]

    @classmethod
    def coerce(cls, handlers: Any) -> HandlerRegistry:
        """Accept a registry, a single callable (used as default), or None."""
        if isinstance(handlers, HandlerRegistry):
            return handlers
        if handlers is None:
            return cls()
        if callable(handlers):
            return cls(default=handlers)
        raise TypeError(f"Expected HandlerRegistry or callable, got {type(handlers).__name__}")
