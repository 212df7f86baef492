"""Single-flight de-duplication for idempotent reads.

Concurrent callers asking for the same request key share one underlying
task. The key is dropped from the in-flight table as soon as that task
settles, before any caller resumes, so the next call after a success or a
failure always starts a fresh request. Mutations never come through here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

from matchday.core.metrics import RequestMetrics
from matchday.core.result import Failure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _consume_outcome(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; keep the loop from warning about
    # an exception nobody retrieved.
    if not task.cancelled():
        task.exception()


class RequestDeduplicator:
    """At most one in-flight task per request key."""

    def __init__(self) -> None:
        self._inflight: Dict[str, asyncio.Task] = {}
        self.metrics = RequestMetrics()

    def __len__(self) -> int:
        return len(self._inflight)

    def in_flight(self, key: Any) -> bool:
        return str(key) in self._inflight

    async def read_through(self, key: Any, factory: Callable[[], Awaitable[T]]) -> T:
        """Return the shared result for `key`, starting `factory` if nobody has.

        Cancelling one caller does not cancel the shared request; the other
        waiters still receive its outcome.
        """

        name = str(key)
        task = self._inflight.get(name)
        if task is not None:
            self.metrics.joined += 1
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self._run(name, factory))
        task.add_done_callback(_consume_outcome)
        self._inflight[name] = task
        self.metrics.started += 1
        return await asyncio.shield(task)

    async def _run(self, name: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await factory()
        except Exception:
            self.metrics.failed += 1
            logger.debug("dedup.read_failed", exc_info=True, extra={"key": name})
            raise
        finally:
            if self._inflight.get(name) is asyncio.current_task():
                del self._inflight[name]
        if isinstance(result, Failure):
            self.metrics.failed += 1
        return result


__all__ = ["RequestDeduplicator"]
