"""Deferred-callback schedulers used for coalesced durable writes.

`LoopScheduler` defers to the running event loop and prefers an idle moment:
while `is_busy()` reports outstanding work, the callback is pushed back by
`delay` until `idle_timeout` has passed, after which it runs regardless.
`ManualScheduler` queues callbacks until a test calls `run_pending()`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class WriteScheduler(Protocol):
    def schedule(self, callback: Callback) -> ScheduledHandle: ...


class _Deferred:
    __slots__ = ("callback", "cancelled", "deadline", "timer")

    def __init__(self, callback: Callback, deadline: float) -> None:
        self.callback = callback
        self.deadline = deadline
        self.cancelled = False
        self.timer: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class LoopScheduler:
    """Runs callbacks on the event loop after a short, idle-preferring delay."""

    def __init__(
        self,
        *,
        delay: float = 0.05,
        idle_timeout: float = 0.6,
        is_busy: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.delay = delay
        self.idle_timeout = idle_timeout
        self.is_busy = is_busy

    def schedule(self, callback: Callback) -> ScheduledHandle:
        deferred = _Deferred(callback, time.monotonic() + self.idle_timeout)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to defer onto; write through immediately.
            self._run(deferred)
            return deferred
        deferred.timer = loop.call_later(self.delay, self._fire, loop, deferred)
        return deferred

    def _fire(self, loop: asyncio.AbstractEventLoop, deferred: _Deferred) -> None:
        deferred.timer = None
        if deferred.cancelled:
            return
        busy = self.is_busy is not None and self.is_busy()
        if busy and time.monotonic() < deferred.deadline:
            deferred.timer = loop.call_later(self.delay, self._fire, loop, deferred)
            return
        self._run(deferred)

    @staticmethod
    def _run(deferred: _Deferred) -> None:
        if deferred.cancelled:
            return
        deferred.cancelled = True
        try:
            deferred.callback()
        except Exception:
            logger.exception("scheduler.callback_failed")


class ManualScheduler:
    """Queues callbacks until `run_pending()` is called."""

    def __init__(self) -> None:
        self._queue: List[_Deferred] = []

    def schedule(self, callback: Callback) -> ScheduledHandle:
        deferred = _Deferred(callback, deadline=0.0)
        self._queue.append(deferred)
        return deferred

    @property
    def pending(self) -> int:
        return sum(1 for item in self._queue if not item.cancelled)

    def run_pending(self) -> int:
        queue, self._queue = self._queue, []
        ran = 0
        for deferred in queue:
            if deferred.cancelled:
                continue
            LoopScheduler._run(deferred)
            ran += 1
        return ran


__all__ = ["LoopScheduler", "ManualScheduler", "ScheduledHandle", "WriteScheduler"]
