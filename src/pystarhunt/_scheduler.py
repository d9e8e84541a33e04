"""Timer capability shared by every periodic or delayed task.

Reconnect backoff, keep-alive, cold retry, sweep and panel refresh all go
through a :class:`TaskScheduler`.  Production code uses
:class:`AsyncioTaskScheduler`; tests pass a manual scheduler they can
advance by hand.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Protocol

_logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    """Handle returned by a scheduler; cancelling it is idempotent."""

    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...


class TaskScheduler(Protocol):
    """Structural interface for delayed and periodic callbacks."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        ...

    def call_every(self, period: float, callback: Callable[[], None]) -> ScheduledTask:
        ...


class _LoopTask:
    """A one-shot or periodic timer armed on an event loop."""

    def __init__(
        self,
        scheduler: AsyncioTaskScheduler,
        callback: Callable[[], None],
        *,
        period: float | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._period = period
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _arm(self, delay: float) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._handle = self._scheduler.loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            self._callback()
        except Exception:
            _logger.debug("Scheduled callback %r failed", self._callback, exc_info=True)
        if self._period is None:
            self._scheduler._forget(self)
        else:
            self._arm(self._period)

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            handle = self._handle
            self._handle = None
        self._scheduler._forget(self)
        if handle is not None:
            self._scheduler.run_in_loop(handle.cancel)


class AsyncioTaskScheduler:
    """Runs callbacks on an asyncio event loop.

    Safe to call from any thread; arming a timer is handed to the loop
    with ``call_soon_threadsafe`` when the caller is not on it.  A callback
    that raises is logged and, for periodic tasks, runs again next period.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self._tasks: set[_LoopTask] = set()
        self._lock = threading.Lock()

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    def run_in_loop(self, fn: Callable[[], None]) -> None:
        """Run *fn* on the loop: now if already there, else soon."""
        if self._on_loop_thread():
            fn()
        elif not self.loop.is_closed():
            self.loop.call_soon_threadsafe(fn)

    def _schedule(self, task: _LoopTask, delay: float) -> _LoopTask:
        with self._lock:
            self._tasks.add(task)
        self.run_in_loop(lambda: task._arm(delay))
        return task

    def _forget(self, task: _LoopTask) -> None:
        with self._lock:
            self._tasks.discard(task)

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        return self._schedule(_LoopTask(self, callback), delay)

    def call_every(self, period: float, callback: Callable[[], None]) -> ScheduledTask:
        return self._schedule(_LoopTask(self, callback, period=period), period)

    def cancel_all(self) -> None:
        with self._lock:
            tasks = list(self._tasks)
        for task in tasks:
            task.cancel()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._tasks)
