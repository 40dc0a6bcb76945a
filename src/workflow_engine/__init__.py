"""Workflow Engine package root.

The public API surface includes the WorkflowEngine façade, the runtime
helpers applications interact with (handler registry, execution context,
cancellation), and the schema types exposed in ``workflow_engine.schemas``.
"""

__version__ = "0.1.0"

from workflow_engine.engine import WorkflowEngine  # noqa: F401
from workflow_engine.exceptions import (  # noqa: F401
    CriticalTaskFailure,
    CycleError,
    ManifestLoadError,
    ResourceConstraintError,
    TaskAttemptError,
    TaskTimeoutError,
    ValidationError,
    WorkflowCancelledError,
    WorkflowEngineError,
)
from workflow_engine.runtime import (  # noqa: F401
    CancellationToken,
    ExecutionContext,
    HandlerRegistry,
    HandlerResult,
)
from workflow_engine.schemas import *  # noqa: F401,F403
from workflow_engine.schemas import __all__ as SCHEMA_EXPORTS
from workflow_engine.telemetry import TelemetryBus  # noqa: F401

__all__ = [
    "__version__",
    "WorkflowEngine",
    "CriticalTaskFailure",
    "CycleError",
    "ManifestLoadError",
    "ResourceConstraintError",
    "TaskAttemptError",
    "TaskTimeoutError",
    "ValidationError",
    "WorkflowCancelledError",
    "WorkflowEngineError",
    "CancellationToken",
    "ExecutionContext",
    "HandlerRegistry",
    "HandlerResult",
    "TelemetryBus",
] + SCHEMA_EXPORTS
