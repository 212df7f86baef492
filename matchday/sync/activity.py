"""Process-wide busy indicator driven by outstanding network operations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_BUSY_DELAY = 0.3


class ActivityIndicator:
    """Counts outstanding operations and shows a busy affordance for slow ones.

    The first acquire arms a timer; if work is still outstanding when it
    fires, `on_change(True)` is emitted. Dropping back to zero cancels the
    timer and emits `on_change(False)` right away, so operations faster than
    `delay` never flicker the indicator.
    """

    def __init__(
        self,
        *,
        delay: float = DEFAULT_BUSY_DELAY,
        on_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.delay = delay
        self._on_change = on_change
        self._outstanding = 0
        self._visible = False
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def outstanding(self) -> int:
        return self._outstanding

    @property
    def visible(self) -> bool:
        return self._visible

    def is_busy(self) -> bool:
        return self._outstanding > 0

    def _set_visible(self, visible: bool) -> None:
        if self._visible == visible:
            return
        self._visible = visible
        if self._on_change is None:
            return
        try:
            self._on_change(visible)
        except Exception:
            logger.exception("activity.on_change_failed")

    def _fire(self) -> None:
        self._timer = None
        if self._outstanding > 0:
            self._set_visible(True)

    def acquire(self) -> None:
        self._outstanding += 1
        if self._outstanding != 1:
            return
        if self._timer is not None:
            self._timer.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._timer = None
            return
        self._timer = loop.call_later(self.delay, self._fire)

    def release(self) -> None:
        if self._outstanding == 0:
            logger.warning("activity.release_without_acquire")
            return
        self._outstanding -= 1
        if self._outstanding > 0:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._set_visible(False)

    @asynccontextmanager
    async def track(self) -> AsyncIterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()


__all__ = ["ActivityIndicator", "DEFAULT_BUSY_DELAY"]
