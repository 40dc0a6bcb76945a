"""Execution context handed to task handlers, and per-run control signals."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from workflow_engine.exceptions import WorkflowCancelledError

ProgressCallback = Callable[[str, float, Optional[str]], None]


class CancellationToken:
    """Run-scoped cancellation signal.

    Safe to trigger from any thread. Handlers that run for a long time should
    poll ``cancelled`` (or ``context.cancelled``) and return promptly; the
    engine never kills a dispatched handler itself.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` once on cancellation, at once if already cancelled.

        Callbacks run on the thread that calls ``cancel``.

        Returns:
            A callable that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, workflow_id: str) -> None:
        if self.cancelled:
            raise WorkflowCancelledError(workflow_id)


@dataclass
class ExecutionContext:
    """Shared context for every task of one run.

    Read-only from the engine's point of view, except ``shared_state``, which
    handlers may use to pass data to later tasks. The engine binds
    ``workflow_id``, ``cancellation`` and the progress callback on a copy at
    the start of each run; ``shared_state`` is the same dict object in that
    copy, so the caller sees what handlers stored.
    """

    working_directory: str = field(default_factory=os.getcwd)
    environment: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("workflow_engine.tasks"))
    shared_state: Dict[str, Any] = field(default_factory=dict)
    config: Dict[str, Any] = field(default_factory=dict)
    workflow_id: Optional[str] = None
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    progress_callback: Optional[ProgressCallback] = field(default=None, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    def report_progress(self, task_id: str, progress: float, message: Optional[str] = None) -> None:
        """Report task progress (0-100) to observers."""
        if self.progress_callback:
            self.progress_callback(task_id, max(0.0, min(100.0, float(progress))), message)


class RunControl:
    """Pause/resume/cancel signalling for one active run.

    Pausing is cooperative: the scheduler waits at its checkpoints (before each
    phase, each dispatch and each retry) until resumed. Cancelling also wakes
    paused waiters so the run can wind down, whether it comes through
    ``cancel`` or straight from the token on any thread. Create the control,
    pause and resume on the event loop running the workflow, and ``close``
    it when the run ends.
    """

    def __init__(self, workflow_id: str, cancellation: CancellationToken):
        self.workflow_id = workflow_id
        self.cancellation = cancellation
        self._loop = asyncio.get_running_loop()
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._release = cancellation.add_callback(self._wake)

    def _wake(self) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._resumed.set)

    def close(self) -> None:
        """Detach from the token; later cancellations no longer touch this loop."""
        self._release()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    def pause(self) -> bool:
        if self.paused or self.cancelled:
            return False
        self._resumed.clear()
        return True

    def resume(self) -> bool:
        if not self.paused:
            return False
        self._resumed.set()
        return True

    def cancel(self) -> None:
        self.cancellation.cancel()
        self._resumed.set()

    async def checkpoint(self) -> None:
        """Wait while paused, then raise if the run was cancelled.

        Raises:
            WorkflowCancelledError: If the cancellation token is set.
        """
        self.cancellation.raise_if_cancelled(self.workflow_id)
        while self.paused:
            await self._resumed.wait()
            # cancel() wakes waiters too
            self.cancellation.raise_if_cancelled(self.workflow_id)
        self.cancellation.raise_if_cancelled(self.workflow_id)
