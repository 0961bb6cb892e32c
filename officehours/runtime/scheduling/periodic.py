"""PeriodicUpdateScheduler: drives on_queue_periodic_update for a server."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class PeriodicUpdateScheduler:
    """Runs a server's periodic queue update on a fixed interval.

    Example:
        >>> scheduler = PeriodicUpdateScheduler(
        ...     server_id="guild-1",
        ...     callback=server.run_periodic_update,
        ...     interval_minutes=60,
        ... )
        >>> await scheduler.start()
    """

    def __init__(
        self,
        server_id: str,
        callback: Callable[[], Awaitable[Any]],
        interval_minutes: int | None = 60,
    ):
        """Initialize the scheduler.

        Args:
            server_id: Server the updates belong to (used for job ids and logs).
            callback: Coroutine function run on every tick.
            interval_minutes: Minutes between ticks. None disables the scheduler.
        """
        self.server_id = server_id
        self.callback = callback
        self.interval_minutes = interval_minutes
        self._scheduler: AsyncIOScheduler | None = None
        self._job: Any = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def start(self) -> None:
        """Start the scheduler with an interval trigger."""
        if self.interval_minutes is None:
            logger.info(f"Periodic updates disabled for server: {self.server_id}")
            return

        if self.running:
            logger.warning(f"Periodic updates already running for server: {self.server_id}")
            return

        self._scheduler = AsyncIOScheduler()
        trigger = IntervalTrigger(minutes=self.interval_minutes)

        self._job = self._scheduler.add_job(
            func=self._run_update,
            trigger=trigger,
            id=f"periodic_update_{self.server_id}",
            name=f"Periodic update: {self.server_id}",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"Periodic updates started for server '{self.server_id}' (interval: {self.interval_minutes}m)"
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info(f"Periodic updates stopped for server: {self.server_id}")
        self._scheduler = None
        self._job = None

    async def _run_update(self) -> None:
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"Periodic update failed for server '{self.server_id}': {e}", exc_info=True)
