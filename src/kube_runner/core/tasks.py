"""Transient task registry.

Every long-lived background operation (live log follow, history backfill,
clipboard auto-clear, shell output pump) is registered under a
``TaskKind``. At most one task per kind exists: spawning a new one cancels
its predecessor. Cancelling a finished task is a no-op.

Work that blocks in the kubernetes client runs on daemon threads. Those
observe a ``CancelToken`` and the closed result channel, and register an
``on_cancel`` callback that closes whatever they are blocked reading.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


class TaskKind(Enum):
    """Slots in the registry; one live task each."""

    LOG_FOLLOW = "log_follow"
    LOG_HISTORY = "log_history"
    CLIPBOARD_CLEAR = "clipboard_clear"
    SHELL_PUMP = "shell_pump"


class CancelToken:
    """Cooperative cancellation flag handed to thread workers."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, or now if already cancelled.

        Used to unblock a worker stuck in a read by closing what it reads.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep until cancelled or ``timeout`` elapses; True if cancelled."""
        return self._event.wait(timeout)


class TaskHandle:
    """Cancellation handle for one asyncio task or daemon thread."""

    def __init__(
        self,
        kind: TaskKind | None,
        *,
        task: asyncio.Task[Any] | None = None,
        thread: threading.Thread | None = None,
        token: CancelToken | None = None,
    ) -> None:
        self.kind = kind
        self._task = task
        self._thread = thread
        self.token = token or CancelToken()

    @property
    def done(self) -> bool:
        if self._task is not None:
            return self._task.done()
        if self._thread is not None:
            return not self._thread.is_alive()
        return True

    def cancel(self) -> None:
        """Request cancellation; safe to call repeatedly or after completion."""
        self.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()


class TaskRegistry:
    """Registry of cancellable background operations."""

    def __init__(self) -> None:
        self._handles: dict[TaskKind, TaskHandle] = {}
        self._oneshots: set[asyncio.Task[Any]] = set()

    def spawn(self, kind: TaskKind, coro: Coroutine[Any, Any, Any]) -> TaskHandle:
        """Run ``coro`` as the task for ``kind``, cancelling the previous one."""
        self.cancel(kind)
        task = asyncio.get_running_loop().create_task(coro, name=f"kr-{kind.value}")
        handle = TaskHandle(kind, task=task)
        self._handles[kind] = handle
        logger.debug("task_spawned", kind=kind.value)
        return handle

    def spawn_thread(
        self,
        kind: TaskKind,
        target: Callable[[CancelToken], None],
    ) -> TaskHandle:
        """Run ``target(token)`` on a daemon thread registered under ``kind``."""
        self.cancel(kind)
        token = CancelToken()
        thread = threading.Thread(
            target=target,
            args=(token,),
            name=f"kr-{kind.value}",
            daemon=True,
        )
        handle = TaskHandle(kind, thread=thread, token=token)
        self._handles[kind] = handle
        thread.start()
        logger.debug("thread_spawned", kind=kind.value)
        return handle

    def spawn_oneshot(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run a fire-and-forget task; a strong reference is kept until it finishes."""
        task = asyncio.get_running_loop().create_task(coro)
        self._oneshots.add(task)
        task.add_done_callback(self._oneshots.discard)
        return task

    def cancel(self, kind: TaskKind) -> None:
        """Cancel the task for ``kind`` if one is registered."""
        handle = self._handles.pop(kind, None)
        if handle is not None:
            handle.cancel()

    def is_running(self, kind: TaskKind) -> bool:
        handle = self._handles.get(kind)
        return handle is not None and not handle.done

    def get(self, kind: TaskKind) -> TaskHandle | None:
        return self._handles.get(kind)

    def cancel_all(self) -> None:
        """Cancel every registered and one-shot task."""
        for kind in list(self._handles):
            self.cancel(kind)
        for task in list(self._oneshots):
            task.cancel()
        logger.debug("tasks_cancelled")
