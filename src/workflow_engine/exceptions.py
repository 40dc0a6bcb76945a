"""
Custom exception classes for the workflow engine.

Fatal errors (ValidationError, CycleError) reject a workflow before any task
runs and are raised to the caller. Task-level errors (TaskAttemptError and its
subclasses) are transient: the retry controller catches them, retries, and
finally records them in the task result. CriticalTaskFailure is the one
task-level error that crosses task boundaries, aborting the run.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from workflow_engine.schemas import ExecutionReport, TaskExecutionResult


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    # Set by the engine on fatal errors so callers can inspect the failed run.
    report: Optional["ExecutionReport"] = None


class ManifestLoadError(WorkflowEngineError):
    """Error loading a configuration manifest."""

    def __init__(self, file_name: str, message: str):
        self.file_name = file_name
        self.message = message
        super().__init__(f"Error loading {file_name}: {message}")


class ValidationError(WorkflowEngineError):
    """Malformed workflow: empty, duplicate IDs, or unknown dependencies."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        self.message = message
        self.task_id = task_id
        super().__init__(message)


class CycleError(WorkflowEngineError):
    """The dependency relation contains a cycle.

    ``cycles`` holds explicit paths (``["a", "b", "a"]``) when found by
    depth-first search; ``unresolved`` holds the task IDs the phase planner
    could not place.
    """

    def __init__(
        self,
        message: str,
        cycles: Optional[List[List[str]]] = None,
        unresolved: Optional[List[str]] = None,
    ):
        self.message = message
        self.cycles = cycles or []
        self.unresolved = unresolved or []
        super().__init__(message)

    @property
    def paths(self) -> List[str]:
        return [" -> ".join(cycle) for cycle in self.cycles]


class TaskAttemptError(WorkflowEngineError):
    """A single task attempt failed; subject to the retry policy."""

    def __init__(self, task_id: str, message: str):
        self.task_id = task_id
        self.message = message
        super().__init__(message)


class TaskTimeoutError(TaskAttemptError):
    """A task attempt exceeded its timeout; subject to the retry policy."""

    def __init__(self, task_id: str, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(task_id, f"Task timeout after {timeout_ms:g}ms")


class ResourceConstraintError(TaskAttemptError):
    """A resource limit was exceeded before the attempt started."""

    def __init__(self, task_id: str, resource: str, usage: float, limit: float):
        self.resource = resource
        self.usage = usage
        self.limit = limit
        super().__init__(
            task_id,
            f"{resource.capitalize()} usage ({usage:.2f}MB) exceeds limit ({limit:g}MB)",
        )


class CriticalTaskFailure(WorkflowEngineError):
    """A critical task exhausted its retries under stop_on_critical_failure."""

    def __init__(self, task_id: str, task_name: str, result: "TaskExecutionResult"):
        self.task_id = task_id
        self.task_name = task_name
        self.result = result
        super().__init__(f"Critical task failed: {task_name} ({task_id})")


class WorkflowCancelledError(WorkflowEngineError):
    """The run's cancellation token was triggered."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow cancelled: {workflow_id}")
