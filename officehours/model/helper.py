"""Domain models for helper sessions and help-session tracking."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from officehours.core.clock import elapsed_ms
from officehours.model.identity import MemberId, QueueId
from officehours.model.queue import Waiter


@dataclass(frozen=True)
class HelperSession:
    """An actor actively helping, from start to stop.

    Open while ``help_end`` is None. Once closed the record is never modified
    again; the session manager replaces the whole object on every change.

    Attributes:
        actor_id: The helper.
        served_queue_ids: Queues the helper opened when starting.
        help_start: When the helper started.
        help_end: When the helper stopped (None while open).
        helped_waiters: Waiters claimed during this session, in claim order.
        active_time_ms: Time with at least one claimed student present.
    """

    actor_id: MemberId
    served_queue_ids: frozenset[QueueId]
    help_start: datetime
    help_end: datetime | None = None
    helped_waiters: tuple[Waiter, ...] = ()
    active_time_ms: int = 0

    @property
    def is_open(self) -> bool:
        return self.help_end is None

    @property
    def duration_ms(self) -> int | None:
        """Total help time, or None while the session is still open."""
        if self.help_end is None:
            return None
        return elapsed_ms(self.help_start, self.help_end)

    def to_dict(self) -> dict[str, Any]:
        """Convert to an attendance record suitable for JSON serialization."""
        return {
            "helper_id": self.actor_id,
            "served_queue_ids": sorted(self.served_queue_ids),
            "help_start": self.help_start.isoformat(),
            "help_end": self.help_end.isoformat() if self.help_end else None,
            "helped_members": [waiter.actor_id for waiter in self.helped_waiters],
            "active_time_ms": self.active_time_ms,
        }


@dataclass(frozen=True)
class JustClaimed:
    """A claimed student who has not yet joined the helper's meeting space."""

    actor_id: MemberId
    queue_id: QueueId
    wait_start: datetime
    helper_id: MemberId
    claimed_at: datetime

    @classmethod
    def from_waiter(cls, waiter: Waiter, helper_id: MemberId, claimed_at: datetime) -> "JustClaimed":
        return cls(
            actor_id=waiter.actor_id,
            queue_id=waiter.queue_id,
            wait_start=waiter.wait_start,
            helper_id=helper_id,
            claimed_at=claimed_at,
        )


@dataclass(frozen=True)
class HelpSessionEntry:
    """One completed help session between a student and a helper.

    Attributes:
        student_id: The helped student.
        helper_id: The helper that was present.
        queue_id: Queue the student was claimed from.
        session_start: When the student joined the meeting space.
        session_end: When the student left the meeting space.
        wait_start: When the student joined the queue.
        wait_time_ms: Time between joining the queue and being claimed.
    """

    student_id: MemberId
    helper_id: MemberId
    queue_id: QueueId
    session_start: datetime
    session_end: datetime
    wait_start: datetime
    wait_time_ms: int

    @property
    def session_duration_ms(self) -> int:
        return elapsed_ms(self.session_start, self.session_end)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with ISO 8601 datetime strings."""
        return {
            "student_id": self.student_id,
            "helper_id": self.helper_id,
            "queue_id": self.queue_id,
            "session_start": self.session_start.isoformat(),
            "session_end": self.session_end.isoformat(),
            "wait_start": self.wait_start.isoformat(),
            "wait_time_ms": self.wait_time_ms,
        }


@dataclass(frozen=True)
class PendingHelpSession:
    """A help session whose student is currently present."""

    student_id: MemberId
    helper_id: MemberId
    queue_id: QueueId
    session_start: datetime
    wait_start: datetime
    wait_time_ms: int

    def complete(self, session_end: datetime) -> HelpSessionEntry:
        # A reordered leave stamped before the join still yields a zero-length session
        return HelpSessionEntry(
            student_id=self.student_id,
            helper_id=self.helper_id,
            queue_id=self.queue_id,
            session_start=self.session_start,
            session_end=max(session_end, self.session_start),
            wait_start=self.wait_start,
            wait_time_ms=self.wait_time_ms,
        )


@dataclass
class ActiveTime:
    """Incremental active-time accumulator for one helper session.

    Time accrues only while at least one claimed student is present. The
    interval opens on the first join (``covering_since``) and closes when the
    last present student leaves, so overlapping students collapse into a
    single covered interval.
    """

    present_students: set[MemberId] = field(default_factory=set)
    covering_since: datetime | None = None
    active_time_ms: int = 0

    def student_joined(self, student_id: MemberId, when: datetime) -> None:
        if not self.present_students:
            self.covering_since = when
        self.present_students.add(student_id)

    def student_left(self, student_id: MemberId, when: datetime) -> None:
        if student_id not in self.present_students:
            return
        self.present_students.discard(student_id)
        if not self.present_students:
            self._close_interval(when)

    def freeze(self, when: datetime) -> int:
        """Close any open interval and return the final total."""
        self._close_interval(when)
        self.present_students.clear()
        return self.active_time_ms

    def _close_interval(self, when: datetime) -> None:
        if self.covering_since is None:
            return
        self.active_time_ms += max(0, elapsed_ms(self.covering_since, when))
        self.covering_since = None
