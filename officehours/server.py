"""AttendingServer: composition root for one server's queues and helpers."""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from officehours.core.clock import Clock, format_duration_ms, utc_now
from officehours.core.config import Config
from officehours.core.errors import (
    AlreadyInQueueError,
    NotHelpingError,
    NotInQueueError,
    NotServingQueueError,
    QueueAlreadyExistsError,
    QueueEmptyError,
    QueueNotFoundError,
)
from officehours.core.logging import get_server_logger, setup_server_logger
from officehours.extensions.backup import BackupExtension, JsonFileSnapshotSink, SnapshotSink
from officehours.extensions.bus import ExtensionBus
from officehours.extensions.tracking import ActivityTrackingExtension, JsonlTrackingStore
from officehours.model.helper import HelperSession, HelpSessionEntry, PendingHelpSession
from officehours.model.identity import MemberId, QueueId, ServerId
from officehours.model.queue import QueueView, Waiter
from officehours.model.snapshot import QueueSnapshot, ServerSnapshot
from officehours.runtime.queue.help_queue import HelpQueue
from officehours.runtime.scheduling.periodic import PeriodicUpdateScheduler
from officehours.runtime.session.manager import SessionLifecycleManager


class AttendingServer:
    """One server: its queues, its helper sessions and its extension bus.

    Operations validate synchronously, change state, and only then await the
    extension bus. Usage errors are raised before anything changes.
    """

    def __init__(
        self,
        server_id: ServerId,
        name: str = "",
        config: Config | None = None,
        clock: Clock = utc_now,
        snapshot_sink: SnapshotSink | None = None,
        extensions: Iterable[Any] = (),
    ):
        """Initialize the server.

        Args:
            server_id: Unique server id.
            name: Display name (defaults to the id).
            config: Application configuration (defaults apply when None).
            clock: Time source shared by every component of the server.
            snapshot_sink: Where queue backups go. When set, a
                BackupExtension is registered ahead of ``extensions``.
            extensions: Observers to register, in dispatch order.
        """
        self.server_id = server_id
        self.name = name or server_id
        self.config = config or Config()
        self._clock = clock
        self._logger = get_server_logger(server_id)

        self.bus = ExtensionBus(owner=self)
        self.sessions = SessionLifecycleManager(self.bus, clock=clock, log=self._logger)
        self._queues: dict[QueueId, HelpQueue] = {}
        self._snapshot_sink = snapshot_sink

        if snapshot_sink is not None:
            self.bus.register(BackupExtension(snapshot_sink))
        for extension in extensions:
            self.bus.register(extension)

        self._scheduler = PeriodicUpdateScheduler(
            server_id=server_id,
            callback=self.run_periodic_update,
            interval_minutes=self.config.queue.periodic_update_minutes,
        )

    @classmethod
    async def create(
        cls,
        server_id: ServerId,
        name: str = "",
        config: Config | None = None,
        clock: Clock = utc_now,
        snapshot_sink: SnapshotSink | None = None,
        extensions: Iterable[Any] = (),
    ) -> "AttendingServer":
        """Build a server from configuration, restore its backup and start it.

        Built-in observers are added according to ``config``: a JSON file
        sink when ``backup.enabled`` (unless a sink is passed explicitly) and
        activity tracking when ``tracking.enabled``.

        Raises:
            ExtensionSetupError: If a built-in extension cannot be set up.
        """
        config = config or Config()
        if config.logging.per_server:
            setup_server_logger(server_id, config.logging)

        if snapshot_sink is None and config.backup.enabled:
            snapshot_sink = JsonFileSnapshotSink(config.backup.directory)

        observers = list(extensions)
        if config.tracking.enabled:
            observers.append(ActivityTrackingExtension(JsonlTrackingStore(config.tracking.directory)))

        server = cls(
            server_id,
            name=name,
            config=config,
            clock=clock,
            snapshot_sink=snapshot_sink,
            extensions=observers,
        )
        await server.restore()
        await server.start()
        return server

    # -- queries --------------------------------------------------------

    @property
    def queues(self) -> tuple[QueueView, ...]:
        """Views of every queue, in creation order."""
        return tuple(queue.view() for queue in self._queues.values())

    @property
    def queue_ids(self) -> tuple[QueueId, ...]:
        return tuple(self._queues)

    @property
    def helpers(self) -> Mapping[MemberId, HelperSession]:
        """Open helper sessions keyed by helper id."""
        return self.sessions.helpers

    @property
    def snapshot_sink(self) -> SnapshotSink | None:
        return self._snapshot_sink

    def get_queue(self, queue_id: QueueId) -> HelpQueue:
        """Look up a queue.

        Raises:
            QueueNotFoundError: If no such queue exists.
        """
        queue = self._queues.get(queue_id)
        if queue is None:
            raise QueueNotFoundError(f"Queue {queue_id} does not exist")
        return queue

    def queues_of(self, actor_id: MemberId) -> tuple[HelpQueue, ...]:
        """Queues the actor is currently waiting in."""
        return tuple(queue for queue in self._queues.values() if queue.has_student(actor_id))

    # -- queue management -----------------------------------------------

    async def create_queue(
        self,
        queue_id: QueueId,
        topic_name: str,
        parent_group_id: str | None = None,
        auto_clear_timeout: timedelta | None = None,
    ) -> HelpQueue:
        """Create a queue and announce it.

        Args:
            queue_id: Unique queue id.
            topic_name: Display name.
            parent_group_id: Owning group (defaults to the queue id).
            auto_clear_timeout: Overrides ``queue.auto_clear_minutes``.

        Raises:
            QueueAlreadyExistsError: If the id is taken.
        """
        if queue_id in self._queues:
            raise QueueAlreadyExistsError(f"Queue {queue_id} already exists", topic_name)

        queue = self._build_queue(queue_id, topic_name, parent_group_id, auto_clear_timeout)
        self._queues[queue_id] = queue
        self._logger.info(f"Created queue '{topic_name}' ({queue_id})")

        view = queue.view()
        await self.bus.dispatch("on_queue_create", view)
        await self.bus.dispatch("on_queue_periodic_update", view, True)
        return queue

    def _build_queue(
        self,
        queue_id: QueueId,
        topic_name: str,
        parent_group_id: str | None,
        auto_clear_timeout: timedelta | None,
    ) -> HelpQueue:
        return HelpQueue(
            queue_id=queue_id,
            topic_name=topic_name,
            parent_group_id=parent_group_id or queue_id,
            bus=self.bus,
            auto_clear_timeout=auto_clear_timeout or self.config.queue.auto_clear_timeout,
            clock=self._clock,
            log=self._logger.for_queue(queue_id),
        )

    async def delete_queue(self, queue_id: QueueId) -> tuple[Waiter, ...]:
        """Remove a queue, evicting everyone waiting in it.

        Raises:
            QueueNotFoundError: If no such queue exists.
        """
        queue = self.get_queue(queue_id)
        del self._queues[queue_id]
        self._logger.info(f"Deleting queue '{queue.topic_name}' ({queue_id})")
        return await queue.graceful_delete()

    async def set_queue_auto_clear(self, queue_id: QueueId, minutes: float | None) -> None:
        """Change a queue's auto-clear timeout (None disables it).

        Raises:
            QueueNotFoundError: If no such queue exists.
            ValueError: If ``minutes`` is not positive.
        """
        if minutes is not None and minutes <= 0:
            raise ValueError("auto-clear minutes must be positive")
        queue = self.get_queue(queue_id)
        queue.set_auto_clear(timedelta(minutes=minutes) if minutes is not None else None)
        await self.bus.dispatch("on_queue_settings_change", queue.view())

    # -- student operations ---------------------------------------------

    async def enqueue(self, queue_id: QueueId, actor_id: MemberId, help_topic: str | None = None) -> Waiter:
        """Add a student to a queue.

        Raises:
            QueueNotFoundError: If no such queue exists.
            AlreadyInQueueError: If the student is already in this queue, or
                in any queue when multi-queue membership is disabled.
        """
        queue = self.get_queue(queue_id)
        if not self.config.queue.allow_multi_queue_membership:
            for other in self.queues_of(actor_id):
                if other is not queue:
                    raise AlreadyInQueueError(
                        f"{actor_id} is already waiting in another queue", other.topic_name
                    )
        return await queue.enqueue(actor_id, help_topic)

    async def leave(self, actor_id: MemberId, queue_id: QueueId | None = None) -> tuple[Waiter, ...]:
        """Voluntarily leave one queue, or every queue when ``queue_id`` is None.

        Returns:
            The removed waiters (empty if the student was not waiting).

        Raises:
            QueueNotFoundError: If ``queue_id`` names no queue.
        """
        queues = (self.get_queue(queue_id),) if queue_id is not None else self.queues_of(actor_id)

        removed: list[tuple[HelpQueue, Waiter]] = []
        for queue in queues:
            waiter = queue.discard(actor_id)
            if waiter is not None:
                removed.append((queue, waiter))

        for queue, waiter in removed:
            await self.bus.dispatch("on_student_leave", queue.view(), waiter)
        return tuple(waiter for _, waiter in removed)

    async def clear_queue(self, queue_id: QueueId) -> tuple[Waiter, ...]:
        """Empty one queue.

        Raises:
            QueueNotFoundError: If no such queue exists.
        """
        return await self.get_queue(queue_id).clear()

    async def clear_all_queues(self) -> dict[QueueId, tuple[Waiter, ...]]:
        """Empty every queue; each queue emits its own batch event."""
        drained = [(queue, queue.drain()) for queue in self._queues.values()]
        self._logger.info(f"Cleared all {len(drained)} queue(s)")
        for queue, removed in drained:
            await self.bus.dispatch("on_queue_clear", queue.view(), removed)
        return {queue.queue_id: removed for queue, removed in drained}

    def add_to_notify_group(self, queue_id: QueueId, actor_id: MemberId) -> bool:
        return self.get_queue(queue_id).add_to_notify_group(actor_id)

    def remove_from_notify_group(self, queue_id: QueueId, actor_id: MemberId) -> bool:
        return self.get_queue(queue_id).remove_from_notify_group(actor_id)

    # -- helper operations ----------------------------------------------

    async def start_helping(
        self,
        actor_id: MemberId,
        queue_ids: Iterable[QueueId] | None = None,
        notify: bool = False,
    ) -> HelperSession:
        """Start a helper session and open the queues it serves.

        Args:
            actor_id: The helper.
            queue_ids: Queues to serve (every queue when None).
            notify: Notify (and then clear) each queue's notify group.

        Raises:
            QueueNotFoundError: If a requested queue does not exist.
            AlreadyHelpingError: If the helper is already helping.
        """
        if queue_ids is not None:
            served = list({qid: self.get_queue(qid) for qid in queue_ids}.values())
        else:
            served = list(self._queues.values())

        # Session and queues flip together, before any observer runs
        session = self.sessions.open_session(actor_id, (queue.queue_id for queue in served))
        for queue in served:
            queue.add_helper(actor_id)

        await self.bus.dispatch("on_helper_start_helping", session)
        for queue in served:
            await queue.announce_open(notify)
        return session

    async def stop_helping(self, actor_id: MemberId) -> HelperSession:
        """Stop a helper session and close the queues it served.

        Raises:
            NotHelpingError: If the helper is not helping.
        """
        session = self.sessions.close_session(actor_id)
        served = [queue for queue in self._queues.values() if queue.queue_id in session.served_queue_ids]
        for queue in served:
            queue.remove_helper(actor_id)

        self._logger.info(
            f"{actor_id} helped for {format_duration_ms(session.duration_ms or 0)} "
            f"(active {format_duration_ms(session.active_time_ms)}, "
            f"{len(session.helped_waiters)} student(s))"
        )

        await self.bus.dispatch("on_helper_stop_helping", session)
        for queue in served:
            await queue.announce_close()
        return session

    async def claim(
        self,
        actor_id: MemberId,
        queue_id: QueueId | None = None,
        student_id: MemberId | None = None,
    ) -> Waiter:
        """Claim a student for a helper.

        With ``queue_id`` the claim targets that queue, which the helper must
        be serving. Without it, a given ``student_id`` is looked up across the
        helper's served queues; otherwise the student who has waited longest
        across all served, non-empty queues is taken.

        Raises:
            NotHelpingError: If the helper has no open session.
            QueueNotFoundError: If ``queue_id`` names no queue.
            NotServingQueueError: If the helper does not serve ``queue_id``.
            QueueEmptyError: If there is nobody to claim.
            NotInQueueError: If ``student_id`` is not waiting where searched.
        """
        session = self.sessions.get_session(actor_id)
        if session is None:
            raise NotHelpingError(f"{actor_id} is not currently helping")

        if queue_id is not None:
            queue = self.get_queue(queue_id)
            if queue_id not in session.served_queue_ids:
                raise NotServingQueueError("You are not helping this queue", queue.topic_name)
        else:
            served = [self._queues[qid] for qid in session.served_queue_ids if qid in self._queues]
            if student_id is not None:
                holding = [q for q in served if q.has_student(student_id)]
                if not holding:
                    raise NotInQueueError(f"{student_id} is not in any of your queues")
                queue = min(
                    holding,
                    key=lambda q: next(w.wait_start for w in q.students if w.actor_id == student_id),
                )
            else:
                waiting = [q for q in served if q.first is not None]
                if not waiting:
                    raise QueueEmptyError("There is no one in your queues")
                queue = min(waiting, key=lambda q: q.first.wait_start)

        return await self.sessions.claim(actor_id, queue, student_id)

    async def confirm_presence_join(
        self,
        actor_id: MemberId,
        co_present_ids: Iterable[MemberId] | None = None,
        when: datetime | None = None,
    ) -> tuple[PendingHelpSession, ...]:
        return await self.sessions.confirm_presence_join(actor_id, co_present_ids, when)

    async def confirm_presence_leave(
        self, actor_id: MemberId, when: datetime | None = None
    ) -> tuple[HelpSessionEntry, ...]:
        return await self.sessions.confirm_presence_leave(actor_id, when)

    # -- persistence ----------------------------------------------------

    def snapshot(self) -> ServerSnapshot:
        return ServerSnapshot(
            server_id=self.server_id,
            server_name=self.name,
            timestamp=self._clock(),
            queues=tuple(QueueSnapshot.from_view(queue.view()) for queue in self._queues.values()),
        )

    def snapshot_queue(self, queue_id: QueueId) -> QueueSnapshot:
        return QueueSnapshot.from_view(self.get_queue(queue_id).view())

    async def restore(self, snapshot: ServerSnapshot | None = None) -> int:
        """Load waiters from a snapshot (the sink's backup by default).

        Queues missing on this server are recreated without announcing them.
        Restored queues are closed, so non-empty ones arm their auto-clear
        timer when a timeout is configured.

        Returns:
            Number of waiters restored.
        """
        if snapshot is None:
            if self._snapshot_sink is None:
                return 0
            snapshot = self._snapshot_sink.load_server(self.server_id)
            if snapshot is None:
                return 0

        restored = 0
        for queue_snapshot in snapshot.queues:
            queue = self._queues.get(queue_snapshot.queue_id)
            if queue is None:
                timeout = (
                    timedelta(minutes=queue_snapshot.auto_clear_minutes)
                    if queue_snapshot.auto_clear_minutes
                    else None
                )
                queue = self._build_queue(
                    queue_snapshot.queue_id,
                    queue_snapshot.topic_name,
                    queue_snapshot.parent_group_id,
                    timeout,
                )
                self._queues[queue.queue_id] = queue
            restored += queue.restore(queue_snapshot.waiting_list)
            if queue.length and not queue.is_open:
                queue.schedule_auto_clear()

        self._logger.info(f"Restored {restored} waiter(s) across {len(snapshot.queues)} queue(s)")
        return restored

    # -- lifecycle ------------------------------------------------------

    async def run_periodic_update(self) -> None:
        """Emit the periodic update event for every queue."""
        for queue in list(self._queues.values()):
            await self.bus.dispatch("on_queue_periodic_update", queue.view(), False)

    async def start(self) -> None:
        await self._scheduler.start()
        self._logger.info(f"Server '{self.name}' started with {len(self._queues)} queue(s)")

    async def stop(self) -> None:
        """Stop background work, keeping queue contents for the next start."""
        await self._scheduler.stop()
        for queue in self._queues.values():
            queue.shutdown()
        self._logger.info(f"Server '{self.name}' stopped")

    async def graceful_delete(self) -> None:
        """Tear the server down: end helper sessions, delete queues, announce."""
        await self._scheduler.stop()

        for actor_id in list(self.sessions.helpers):
            try:
                await self.sessions.stop_helping(actor_id)
            except NotHelpingError:
                continue

        for queue_id in list(self._queues):
            await self.delete_queue(queue_id)

        await self.bus.dispatch("on_server_delete")
        self._logger.info(f"Server '{self.name}' deleted")
