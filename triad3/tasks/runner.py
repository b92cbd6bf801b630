"""
Background Runner

Runs the slow half of an import after the request has been answered.

DESIGN DECISION: A supervised event loop on its own thread, not a bare
``asyncio.create_task``. A task created on the request's loop dies with
that loop; tasks submitted here live until they finish, whatever happens
to the caller. Interpreter exit waits for pending tasks (atexit hook),
so a process shutdown does not drop an import halfway.

Task failures are logged and never propagated: by the time a task runs,
the caller has already received its acknowledgment.
"""

import asyncio
import atexit
import threading
from concurrent.futures import Future, wait as wait_futures
from typing import Any, Coroutine, Optional

import structlog

logger = structlog.get_logger(__name__)


class TaskStatus:
    """Task status constants."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunnerClosedError(RuntimeError):
    """Raised when submitting to a runner that has been shut down."""


class BackgroundRunner:
    """
    Fire-and-forget execution with run-to-completion.
    """

    def __init__(self, name: str = "triad3-background"):
        self._name = name
        self._loop = asyncio.new_event_loop()
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(
            target=self._run_loop,
            name=name,
            daemon=True,
        )
        self._thread.start()
        atexit.register(self.shutdown)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        name: Optional[str] = None,
    ) -> Future:
        """
        Schedule a coroutine on the runner loop.

        Returns:
            A concurrent.futures.Future for callers that want to wait

        Raises:
            RunnerClosedError: the runner has been shut down
        """
        with self._lock:
            if self._closed:
                coro.close()
                raise RunnerClosedError(f"{self._name} is shut down")
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
            self._pending.add(future)

        task_name = name or getattr(coro, "__name__", "task")
        future.add_done_callback(lambda f: self._on_done(f, task_name))
        logger.debug("background_task_submitted", task=task_name)
        return future

    def _on_done(self, future: Future, task_name: str) -> None:
        with self._lock:
            self._pending.discard(future)

        if future.cancelled():
            logger.warning("background_task_finished", task=task_name, status=TaskStatus.CANCELLED)
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "background_task_finished",
                task=task_name,
                status=TaskStatus.FAILED,
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            logger.debug("background_task_finished", task=task_name, status=TaskStatus.COMPLETED)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every pending task is done.

        Returns:
            True if nothing is pending any more
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop accepting tasks; optionally wait for pending ones, then stop the loop.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if wait:
            self.wait(timeout)
        else:
            with self._lock:
                pending = list(self._pending)
            for future in pending:
                future.cancel()

        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        if not self._thread.is_alive():
            self._loop.close()
        atexit.unregister(self.shutdown)
