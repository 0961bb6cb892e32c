"""Helper session lifecycle: start, claim, presence tracking and stop."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime
from types import MappingProxyType

from officehours.core.clock import Clock, elapsed_ms, utc_now
from officehours.core.errors import AlreadyHelpingError, NotHelpingError
from officehours.core.logging import ServerLogAdapter
from officehours.extensions.bus import ExtensionBus
from officehours.model.helper import (
    ActiveTime,
    HelperSession,
    HelpSessionEntry,
    JustClaimed,
    PendingHelpSession,
)
from officehours.model.identity import MemberId, QueueId
from officehours.model.queue import Waiter
from officehours.runtime.queue.help_queue import HelpQueue

logger = logging.getLogger(__name__)


class SessionLifecycleManager:
    """Owns helper sessions and the claim -> presence -> help-session pipeline.

    A claimed student first becomes a ``JustClaimed`` record. When the student
    shows up next to an open helper (``confirm_presence_join``) the record is
    promoted to one in-progress help session per co-present helper, and those
    helpers start accruing active time. The student leaving
    (``confirm_presence_leave``) completes the entries.

    Presence signals that do not match any known record are ignored.
    """

    def __init__(self, bus: ExtensionBus, clock: Clock = utc_now, log: ServerLogAdapter | None = None):
        self._bus = bus
        self._clock = clock
        self._log = log or ServerLogAdapter(logger, server_id=None)
        self._sessions: dict[MemberId, HelperSession] = {}
        self._active_time: dict[MemberId, ActiveTime] = {}
        self._just_claimed: dict[MemberId, JustClaimed] = {}
        self._in_progress: dict[MemberId, list[PendingHelpSession]] = {}

    @property
    def helpers(self) -> Mapping[MemberId, HelperSession]:
        """Open helper sessions keyed by helper id (read-only)."""
        return MappingProxyType(self._sessions)

    @property
    def just_claimed(self) -> Mapping[MemberId, JustClaimed]:
        """Claimed students not yet present, keyed by student id (read-only)."""
        return MappingProxyType(self._just_claimed)

    def get_session(self, actor_id: MemberId) -> HelperSession | None:
        return self._sessions.get(actor_id)

    def is_helping(self, actor_id: MemberId) -> bool:
        return actor_id in self._sessions

    def in_progress_for(self, student_id: MemberId) -> tuple[PendingHelpSession, ...]:
        return tuple(self._in_progress.get(student_id, ()))

    def current_active_time_ms(self, actor_id: MemberId) -> int:
        """Active time accrued so far by an open session, including any open interval."""
        accumulator = self._active_time.get(actor_id)
        if accumulator is None:
            return 0
        total = accumulator.active_time_ms
        if accumulator.covering_since is not None:
            total += max(0, elapsed_ms(accumulator.covering_since, self._clock()))
        return total

    def _require_session(self, actor_id: MemberId) -> HelperSession:
        session = self._sessions.get(actor_id)
        if session is None:
            raise NotHelpingError(f"{actor_id} is not currently helping")
        return session

    async def start_helping(self, actor_id: MemberId, served_queue_ids: Iterable[QueueId]) -> HelperSession:
        """Open a helper session and announce it.

        Raises:
            AlreadyHelpingError: If the actor already has an open session.
        """
        session = self.open_session(actor_id, served_queue_ids)
        await self._bus.dispatch("on_helper_start_helping", session)
        return session

    def open_session(self, actor_id: MemberId, served_queue_ids: Iterable[QueueId]) -> HelperSession:
        """Open a helper session without emitting anything.

        Raises:
            AlreadyHelpingError: If the actor already has an open session.
        """
        if actor_id in self._sessions:
            raise AlreadyHelpingError(f"{actor_id} is already helping")

        session = HelperSession(
            actor_id=actor_id,
            served_queue_ids=frozenset(served_queue_ids),
            help_start=self._clock(),
        )
        self._sessions[actor_id] = session
        self._active_time[actor_id] = ActiveTime()
        self._log.info(f"{actor_id} started helping ({len(session.served_queue_ids)} queue(s))")
        return session

    async def claim(self, actor_id: MemberId, queue: HelpQueue, student_id: MemberId | None = None) -> Waiter:
        """Dequeue a student on behalf of a helper.

        Args:
            actor_id: The helper claiming.
            queue: Queue to take the student from.
            student_id: Specific student to take; the head of the queue if None.

        Returns:
            The claimed waiter.

        Raises:
            NotHelpingError: If the actor has no open session.
            QueueEmptyError: If the queue is empty.
            NotInQueueError: If ``student_id`` is not waiting in the queue.
        """
        session = self._require_session(actor_id)
        waiter = queue.pop_specific(student_id) if student_id is not None else queue.pop_first()

        self._sessions[actor_id] = replace(session, helped_waiters=session.helped_waiters + (waiter,))
        superseded = self._just_claimed.get(waiter.actor_id)
        if superseded is not None:
            self._log.debug(
                f"Claim of {waiter.actor_id} by {superseded.helper_id} superseded by {actor_id}"
            )
        self._just_claimed[waiter.actor_id] = JustClaimed.from_waiter(waiter, actor_id, self._clock())

        await queue.announce_dequeue(waiter)
        return waiter

    async def confirm_presence_join(
        self,
        actor_id: MemberId,
        co_present_ids: Iterable[MemberId] | None = None,
        when: datetime | None = None,
    ) -> tuple[PendingHelpSession, ...]:
        """A claimed student joined a helper's meeting space.

        Args:
            actor_id: The student.
            co_present_ids: Actors already present in the space. When None
                the claiming helper is assumed present.
            when: Time of the join (defaults to now).

        Returns:
            The help sessions started, empty if nothing matched.
        """
        claim = self._just_claimed.get(actor_id)
        if claim is None:
            self._log.debug(f"Ignoring presence join of {actor_id}: no pending claim")
            return ()

        candidates = (claim.helper_id,) if co_present_ids is None else tuple(co_present_ids)
        helper_ids = tuple(dict.fromkeys(h for h in candidates if h in self._sessions))
        if not helper_ids:
            self._log.debug(f"Ignoring presence join of {actor_id}: no helper present")
            return ()

        del self._just_claimed[actor_id]
        joined_at = when or self._clock()
        wait_time_ms = max(0, elapsed_ms(claim.wait_start, claim.claimed_at))
        started = tuple(
            PendingHelpSession(
                student_id=actor_id,
                helper_id=helper_id,
                queue_id=claim.queue_id,
                session_start=joined_at,
                wait_start=claim.wait_start,
                wait_time_ms=wait_time_ms,
            )
            for helper_id in helper_ids
        )
        self._in_progress.setdefault(actor_id, []).extend(started)
        for helper_id in helper_ids:
            self._active_time[helper_id].student_joined(actor_id, joined_at)

        await self._bus.dispatch("on_student_join_presence", actor_id, helper_ids)
        return started

    async def confirm_presence_leave(
        self, actor_id: MemberId, when: datetime | None = None
    ) -> tuple[HelpSessionEntry, ...]:
        """A student left the meeting space; complete their help sessions.

        Returns:
            The completed entries, empty if the student had none in progress.
        """
        pending = self._in_progress.pop(actor_id, None)
        if not pending:
            self._log.debug(f"Ignoring presence leave of {actor_id}: no help session in progress")
            return ()

        left_at = when or self._clock()
        entries = tuple(p.complete(left_at) for p in pending)
        for entry in entries:
            accumulator = self._active_time.get(entry.helper_id)
            if accumulator is not None:
                accumulator.student_left(actor_id, entry.session_end)

        for entry in entries:
            await self._bus.dispatch("on_student_leave_presence", entry)
        return entries

    async def stop_helping(self, actor_id: MemberId) -> HelperSession:
        """Close a helper session and announce it.

        Raises:
            NotHelpingError: If the actor has no open session.
        """
        closed = self.close_session(actor_id)
        await self._bus.dispatch("on_helper_stop_helping", closed)
        return closed

    def close_session(self, actor_id: MemberId) -> HelperSession:
        """Close a helper session without emitting anything.

        Freezes active time and drops claims this helper made that never
        turned into a help session.

        Raises:
            NotHelpingError: If the actor has no open session.
        """
        session = self._require_session(actor_id)
        help_end = self._clock()
        accumulator = self._active_time.pop(actor_id, None) or ActiveTime()
        closed = replace(session, help_end=help_end, active_time_ms=accumulator.freeze(help_end))
        del self._sessions[actor_id]

        stale = [sid for sid, claim in self._just_claimed.items() if claim.helper_id == actor_id]
        for student_id in stale:
            del self._just_claimed[student_id]
        if stale:
            self._log.debug(f"Discarded {len(stale)} unconfirmed claim(s) made by {actor_id}")
        return closed
