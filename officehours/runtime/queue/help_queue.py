"""FIFO help queue with a notify group and a close-triggered auto-clear timer."""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from officehours.core.clock import Clock, utc_now
from officehours.core.errors import AlreadyInQueueError, NotInQueueError, QueueEmptyError
from officehours.core.logging import ServerLogAdapter
from officehours.extensions.bus import ExtensionBus
from officehours.model.identity import MemberId, QueueId
from officehours.model.queue import QueueView, Waiter
from officehours.model.snapshot import WaiterSnapshot
from officehours.runtime.queue.auto_clear import AutoClearTimer

logger = logging.getLogger(__name__)


class HelpQueue:
    """One help queue on a server.

    Every public coroutine changes state before its first ``await`` and only
    then dispatches the matching lifecycle event, so observers always see the
    committed state and two interleaved operations never see a half-applied
    one. The synchronous ``push`` / ``pop_*`` / ``drain`` and
    ``add_helper`` / ``remove_helper`` primitives change state without
    emitting anything; callers that use them are responsible for the event.
    """

    def __init__(
        self,
        queue_id: QueueId,
        topic_name: str,
        parent_group_id: str,
        bus: ExtensionBus,
        auto_clear_timeout: timedelta | None = None,
        clock: Clock = utc_now,
        log: ServerLogAdapter | None = None,
    ):
        """Initialize the queue.

        Args:
            queue_id: Unique queue id on the server.
            topic_name: Display name of the queue.
            parent_group_id: Id of the group/category the queue belongs to.
            bus: Extension bus used for lifecycle events.
            auto_clear_timeout: Delay after the last helper leaves before the
                queue is cleared (None disables auto-clear).
            clock: Time source.
            log: Logger scoped to this queue (the server passes its own).
        """
        self._queue_id = queue_id
        self._topic_name = topic_name
        self._parent_group_id = parent_group_id
        self._bus = bus
        self._clock = clock
        self._log = log or ServerLogAdapter(logger, server_id=None, queue_id=queue_id)
        self._auto_clear_timeout = auto_clear_timeout

        self._waiters: list[Waiter] = []
        self._notify_group: set[MemberId] = set()
        self._helper_ids: set[MemberId] = set()
        self._last_closed_at: datetime | None = None
        self._timer = AutoClearTimer(self._auto_clear, name=f"auto-clear:{topic_name}", clock=clock)

    # -- read-only state ------------------------------------------------

    @property
    def queue_id(self) -> QueueId:
        return self._queue_id

    @property
    def topic_name(self) -> str:
        return self._topic_name

    @property
    def parent_group_id(self) -> str:
        return self._parent_group_id

    @property
    def length(self) -> int:
        return len(self._waiters)

    @property
    def is_open(self) -> bool:
        return bool(self._helper_ids)

    @property
    def first(self) -> Waiter | None:
        return self._waiters[0] if self._waiters else None

    @property
    def students(self) -> tuple[Waiter, ...]:
        return tuple(self._waiters)

    @property
    def helper_ids(self) -> frozenset[MemberId]:
        return frozenset(self._helper_ids)

    @property
    def notify_group(self) -> frozenset[MemberId]:
        return frozenset(self._notify_group)

    @property
    def auto_clear_timeout(self) -> timedelta | None:
        return self._auto_clear_timeout

    @property
    def last_closed_at(self) -> datetime | None:
        return self._last_closed_at

    @property
    def auto_clear_pending(self) -> bool:
        return self._timer.pending

    def view(self) -> QueueView:
        """Immutable snapshot of the current queue state."""
        return QueueView(
            queue_id=self._queue_id,
            topic_name=self._topic_name,
            parent_group_id=self._parent_group_id,
            waiters=tuple(self._waiters),
            helper_ids=frozenset(self._helper_ids),
            notify_group=frozenset(self._notify_group),
            auto_clear_timeout=self._auto_clear_timeout,
            last_closed_at=self._last_closed_at,
        )

    def has_student(self, actor_id: MemberId) -> bool:
        return any(waiter.actor_id == actor_id for waiter in self._waiters)

    def position_of(self, actor_id: MemberId) -> int | None:
        """0-based position of a student in the queue, or None if absent."""
        for index, waiter in enumerate(self._waiters):
            if waiter.actor_id == actor_id:
                return index
        return None

    # -- synchronous primitives (no events) -----------------------------

    def push(self, actor_id: MemberId, help_topic: str | None = None) -> Waiter:
        """Append a waiter.

        Raises:
            AlreadyInQueueError: If the actor is already waiting here.
        """
        if self.has_student(actor_id):
            raise AlreadyInQueueError(f"{actor_id} is already in the queue", self._topic_name)
        waiter = Waiter(
            actor_id=actor_id,
            queue_id=self._queue_id,
            wait_start=self._clock(),
            help_topic=help_topic,
        )
        self._waiters.append(waiter)
        return waiter

    def pop_first(self) -> Waiter:
        """Remove and return the head of the queue.

        Raises:
            QueueEmptyError: If nobody is waiting.
        """
        if not self._waiters:
            raise QueueEmptyError("There is no one in the queue", self._topic_name)
        return self._waiters.pop(0)

    def pop_specific(self, actor_id: MemberId) -> Waiter:
        """Remove and return a specific waiter.

        Raises:
            NotInQueueError: If the actor is not waiting here.
        """
        index = self.position_of(actor_id)
        if index is None:
            raise NotInQueueError(f"{actor_id} is not in the queue", self._topic_name)
        return self._waiters.pop(index)

    def discard(self, actor_id: MemberId) -> Waiter | None:
        """Remove a waiter if present."""
        index = self.position_of(actor_id)
        if index is None:
            return None
        return self._waiters.pop(index)

    def drain(self) -> tuple[Waiter, ...]:
        """Remove every waiter at once."""
        removed = tuple(self._waiters)
        self._waiters.clear()
        return removed

    def restore(self, waiters: Iterable[WaiterSnapshot]) -> int:
        """Replace the waiting list with persisted waiters.

        Original ``wait_start`` values are kept and the list is sorted by them.
        Duplicate actors keep their first entry.

        Returns:
            Number of waiters restored.
        """
        restored: dict[MemberId, Waiter] = {}
        for snapshot in sorted(waiters, key=lambda w: w.wait_start):
            if snapshot.actor_id in restored:
                continue
            restored[snapshot.actor_id] = Waiter(
                actor_id=snapshot.actor_id,
                queue_id=self._queue_id,
                wait_start=snapshot.wait_start,
                help_topic=snapshot.help_topic,
            )
        self._waiters = list(restored.values())
        self._log.info(f"Restored {len(self._waiters)} waiter(s) into '{self._topic_name}'")
        return len(self._waiters)

    # -- waiting-list operations ----------------------------------------

    async def enqueue(self, actor_id: MemberId, help_topic: str | None = None) -> Waiter:
        """Add a student to the back of the queue.

        Raises:
            AlreadyInQueueError: If the actor is already waiting here.
        """
        waiter = self.push(actor_id, help_topic)
        self._log.debug(f"{actor_id} joined '{self._topic_name}' at position {len(self._waiters)}")
        await self._bus.dispatch("on_student_join", self.view(), waiter)
        return waiter

    async def dequeue_first(self) -> Waiter:
        """Remove and return the longest-waiting student.

        Raises:
            QueueEmptyError: If nobody is waiting.
        """
        waiter = self.pop_first()
        await self.announce_dequeue(waiter)
        return waiter

    async def dequeue_specific(self, actor_id: MemberId) -> Waiter:
        """Remove and return a specific student.

        Raises:
            NotInQueueError: If the actor is not waiting here.
        """
        waiter = self.pop_specific(actor_id)
        await self.announce_dequeue(waiter)
        return waiter

    async def announce_dequeue(self, waiter: Waiter) -> None:
        """Emit the dequeue event for a waiter already popped from the queue."""
        await self._bus.dispatch("on_dequeue_first", self.view(), waiter)

    async def remove(self, actor_id: MemberId) -> Waiter | None:
        """Voluntary leave. No-op (and no event) if the actor is absent."""
        waiter = self.discard(actor_id)
        if waiter is None:
            return None
        self._log.debug(f"{actor_id} left '{self._topic_name}'")
        await self._bus.dispatch("on_student_leave", self.view(), waiter)
        return waiter

    async def clear(self) -> tuple[Waiter, ...]:
        """Remove every waiter and emit a single batch event.

        Returns:
            The removed waiters in queue order.
        """
        removed = self.drain()
        self._log.info(f"Cleared '{self._topic_name}' ({len(removed)} waiter(s) removed)")
        await self._bus.dispatch("on_queue_clear", self.view(), removed)
        return removed

    # -- notify group ---------------------------------------------------

    def add_to_notify_group(self, actor_id: MemberId) -> bool:
        """Returns True if the actor was not subscribed before."""
        if actor_id in self._notify_group:
            return False
        self._notify_group.add(actor_id)
        return True

    def remove_from_notify_group(self, actor_id: MemberId) -> bool:
        """Returns True if the actor was subscribed."""
        if actor_id not in self._notify_group:
            return False
        self._notify_group.discard(actor_id)
        return True

    # -- helpers and auto-clear -----------------------------------------

    def add_helper(self, helper_id: MemberId) -> None:
        """Mark a helper as serving this queue without emitting anything.

        Cancels any pending auto-clear since the queue is open again.
        """
        self._timer.cancel()
        self._helper_ids.add(helper_id)
        self._log.info(f"'{self._topic_name}' opened by {helper_id}")

    def remove_helper(self, helper_id: MemberId) -> bool:
        """Drop a helper from this queue without emitting anything.

        When the last helper leaves, ``last_closed_at`` is recorded and the
        auto-clear timer is armed if a timeout is set.

        Returns:
            True if the queue is now closed.
        """
        self._helper_ids.discard(helper_id)
        if self._helper_ids:
            return False
        self._last_closed_at = self._clock()
        if self._auto_clear_timeout is not None:
            self._timer.arm(self._auto_clear_timeout)
        self._log.info(f"'{self._topic_name}' closed")
        return True

    async def announce_open(self, notify: bool = False) -> None:
        """Emit ``on_queue_open`` for a helper already added.

        Args:
            notify: Clear the notify group once observers have seen the open
                event (they read the group from the view to notify members).
        """
        await self._bus.dispatch("on_queue_open", self.view())
        if notify:
            self._notify_group.clear()

    async def announce_close(self) -> None:
        await self._bus.dispatch("on_queue_close", self.view())

    async def open(self, helper_id: MemberId, notify: bool = False) -> None:
        """Mark a helper as serving this queue and announce it."""
        self.add_helper(helper_id)
        await self.announce_open(notify)

    async def close(self, helper_id: MemberId) -> None:
        """Mark a helper as no longer serving this queue and announce it."""
        self.remove_helper(helper_id)
        await self.announce_close()

    def schedule_auto_clear(self, duration: timedelta | None = None) -> None:
        """Arm the auto-clear timer, replacing any pending one.

        Args:
            duration: Delay before clearing. Defaults to the configured
                timeout; with neither set this does nothing.
        """
        delay = duration if duration is not None else self._auto_clear_timeout
        if delay is None:
            return
        self._timer.arm(delay)

    def set_auto_clear(self, timeout: timedelta | None) -> None:
        """Change the auto-clear timeout.

        Disabling cancels any pending timer. Enabling on a closed queue arms
        the timer with the new timeout right away.
        """
        self._auto_clear_timeout = timeout
        if timeout is None:
            self._timer.cancel()
        elif not self.is_open:
            self._timer.arm(timeout)
        self._log.info(f"Auto-clear for '{self._topic_name}' set to {timeout}")

    async def _auto_clear(self) -> None:
        if self.is_open:
            self._log.debug(f"Skipping auto-clear for '{self._topic_name}': queue reopened")
            return
        self._log.info(f"Auto-clearing '{self._topic_name}'")
        await self.clear()

    # -- teardown -------------------------------------------------------

    async def graceful_delete(self) -> tuple[Waiter, ...]:
        """Cancel timers, evict all waiters and emit the delete event."""
        self._timer.cancel()
        evicted = self.drain()
        self._helper_ids.clear()
        self._notify_group.clear()
        self._log.info(f"Deleting '{self._topic_name}' ({len(evicted)} waiter(s) evicted)")
        await self._bus.dispatch("on_queue_delete", self.view(), evicted)
        return evicted

    def shutdown(self) -> None:
        """Cancel pending timers without touching queue contents."""
        self._timer.cancel()
