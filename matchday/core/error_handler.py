"""Error handling helpers for fire-and-forget client work."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


def setup_global_exception_handler(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Route uncaught asyncio exceptions to the log instead of stderr."""

    def handle_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exception = context.get("exception")
        message = context.get("message", "Unhandled exception in async task")
        if exception:
            logger.error("Asyncio exception handler caught: %s", message, exc_info=exception)
        else:
            logger.error("Asyncio exception handler caught: %s (context: %s)", message, context)

    try:
        target = loop or asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running loop to install exception handler yet")
        return
    target.set_exception_handler(handle_exception)
    logger.info("Global asyncio exception handler installed")


def safe_background_task(task_name: str, task_coro: Awaitable[Any]) -> asyncio.Task:
    """
    Schedule background work whose failure must never reach the caller.

    Exceptions are logged and swallowed; cancellation is logged and
    propagated so shutdown stays clean.
    """

    async def wrapped() -> Any:
        try:
            return await task_coro
        except asyncio.CancelledError:
            logger.debug("Background task '%s' cancelled", task_name)
            raise
        except Exception:
            logger.exception("Background task '%s' failed with unhandled exception", task_name)
            return None

    return asyncio.create_task(wrapped(), name=task_name)


class BackgroundTasks:
    """Keeps references to background tasks and cancels them on shutdown."""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, task_name: str, task_coro: Awaitable[Any]) -> asyncio.Task:
        task = safe_background_task(task_name, task_coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for tracked tasks to finish (tests, orderly shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        logger.info("Shutting down %d background tasks", len(self._tasks))
        tasks = list(self._tasks)
        for task in tasks:
            if not task.done():
                task.cancel()
        try:
            await asyncio.wait_for(
                asyncio.gather(*tasks, return_exceptions=True),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timeout waiting for background tasks after %.1fs", self.timeout)


__all__ = ["BackgroundTasks", "safe_background_task", "setup_global_exception_handler"]
