"""Single-shot cancellable timer used to auto-clear closed queues."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from officehours.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class AutoClearTimer:
    """Holds at most one pending asyncio task that fires a callback once.

    Re-arming cancels the previous task first, so a queue never has two
    clears pending at the same time.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        name: str = "auto-clear",
        clock: Clock = utc_now,
    ):
        self._callback = callback
        self._name = name
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._expires_at: datetime | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def expires_at(self) -> datetime | None:
        """When the pending timer fires (None if nothing is pending)."""
        return self._expires_at if self.pending else None

    def arm(self, delay: timedelta) -> None:
        """(Re)start the timer. Must be called from a running event loop."""
        self.cancel()
        seconds = max(0.0, delay.total_seconds())
        self._expires_at = self._clock() + delay
        self._task = asyncio.create_task(self._fire(seconds), name=self._name)
        logger.debug(f"Armed {self._name} timer for {seconds:.1f}s")

    def cancel(self) -> bool:
        """Cancel the pending timer.

        Returns:
            True if a pending timer was cancelled.
        """
        task, self._task = self._task, None
        self._expires_at = None
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Cancelled {self._name} timer")
        return True

    async def _fire(self, seconds: float) -> None:
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            return

        self._task = None
        self._expires_at = None
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"{self._name} callback failed: {e}", exc_info=True)
