"""Serialized persistence of in-memory state.

Each backing file gets one queue with a single worker thread, so
writes to that file run strictly one at a time in arrival order. Every
task snapshots the whole current state when it runs and reports its
outcome through its own future only.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
import threading
from typing import Any, Callable, Mapping

from core.errors import MemstorePersistenceError
from core.logging_config import get_logger
from store.state_io import write_state_file

_LOGGER = get_logger(__name__)
_REGISTRY_LOCK = threading.Lock()
_QUEUES: dict[Path, "DurabilityQueue"] = {}
_QUEUE_USERS: dict[Path, int] = {}


@dataclass(frozen=True)
class WriteTask:
    """One queued flush of the current state.

    Attributes:
        snapshot: Returns the full `{ids, models}` payload when called.
        label: Operation name used in log events.
        result: Value the task's future resolves with.
    """

    snapshot: Callable[[], Mapping[str, Any]]
    label: str
    result: Any = None


class DurabilityQueue:
    """Single-concurrency write queue for one backing destination.

    `state` holds the in-memory state shared by every user of the
    destination, so each flush writes everything they have applied.
    """

    def __init__(self, state_path: Path | None, state: Any = None) -> None:
        self._state_path = state_path
        self.state = state
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="memstore-flush")
            if state_path is not None
            else None
        )

    @property
    def state_path(self) -> Path | None:
        return self._state_path

    def enqueue(self, task: WriteTask) -> Future:
        """Schedule a task and return the future its caller waits on.

        Without a backing file the future is already resolved.
        """
        if self._executor is None:
            future: Future = Future()
            future.set_result(task.result)
            return future
        return self._executor.submit(self._run, task)

    def flush(self, timeout: float | None = None) -> None:
        """Wait until every task enqueued so far has finished."""
        if self._executor is None:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        """Drain outstanding writes and stop the worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _run(self, task: WriteTask) -> Any:
        state_path = self._state_path
        assert state_path is not None
        try:
            write_state_file(state_path, task.snapshot())
        except MemstorePersistenceError as error:
            _LOGGER.error(
                "flush_failed",
                state_path=str(state_path),
                operation=task.label,
                error=str(error),
            )
            raise
        _LOGGER.debug("flush_completed", state_path=str(state_path), operation=task.label)
        return task.result


def acquire_queue(
    state_path: Path | None,
    load_state: Callable[[], Any] | None = None,
) -> DurabilityQueue:
    """Return the shared queue for a destination, creating it on first use.

    Args:
        state_path: Backing file, or None for a private memory-only queue.
        load_state: Builds the shared in-memory state. Called only by the
            first user of a destination; later users share its result.

    Returns:
        The queue, with `state` set to the shared state.
    """
    if state_path is None:
        return DurabilityQueue(None, load_state() if load_state else None)
    resolved_path = state_path.expanduser().resolve()
    with _REGISTRY_LOCK:
        queue = _QUEUES.get(resolved_path)
        if queue is None:
            queue = DurabilityQueue(resolved_path, load_state() if load_state else None)
            _QUEUES[resolved_path] = queue
        _QUEUE_USERS[resolved_path] = _QUEUE_USERS.get(resolved_path, 0) + 1
        return queue


def release_queue(queue: DurabilityQueue) -> None:
    """Drop one user of a shared queue, closing it after the last one."""
    state_path = queue.state_path
    if state_path is None:
        queue.close()
        return
    with _REGISTRY_LOCK:
        if _QUEUES.get(state_path) is not queue:
            return
        remaining_users = _QUEUE_USERS.get(state_path, 1) - 1
        if remaining_users > 0:
            _QUEUE_USERS[state_path] = remaining_users
            return
        _QUEUE_USERS.pop(state_path, None)
        _QUEUES.pop(state_path, None)
    queue.close()
