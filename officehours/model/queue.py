"""Domain models for help queues."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from officehours.model.identity import MemberId, QueueId


@dataclass(frozen=True)
class Waiter:
    """A student waiting in one queue.

    Attributes:
        actor_id: Identity of the waiting student.
        queue_id: Queue this waiter belongs to.
        wait_start: When the student joined the queue.
        help_topic: Optional topic the student entered when joining.
    """

    actor_id: MemberId
    queue_id: QueueId
    wait_start: datetime
    help_topic: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with ISO 8601 datetime strings."""
        return {
            "actor_id": self.actor_id,
            "queue_id": self.queue_id,
            "wait_start": self.wait_start.isoformat(),
            "help_topic": self.help_topic,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Waiter":
        """Create instance from dictionary with ISO 8601 datetime strings."""
        return cls(
            actor_id=MemberId(data["actor_id"]),
            queue_id=QueueId(data["queue_id"]),
            wait_start=datetime.fromisoformat(data["wait_start"]),
            help_topic=data.get("help_topic"),
        )


@dataclass(frozen=True)
class QueueView:
    """Read-only snapshot of a queue handed to extensions.

    Extensions never receive the live queue; everything here is immutable so
    an observer cannot corrupt the waiting list or the notify group.
    """

    queue_id: QueueId
    topic_name: str
    parent_group_id: str
    waiters: tuple[Waiter, ...] = ()
    helper_ids: frozenset[MemberId] = field(default_factory=frozenset)
    notify_group: frozenset[MemberId] = field(default_factory=frozenset)
    auto_clear_timeout: timedelta | None = None
    last_closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        """A queue is open while at least one helper serves it."""
        return len(self.helper_ids) > 0

    @property
    def length(self) -> int:
        return len(self.waiters)

    @property
    def first(self) -> Waiter | None:
        return self.waiters[0] if self.waiters else None

    @property
    def student_ids(self) -> tuple[MemberId, ...]:
        return tuple(waiter.actor_id for waiter in self.waiters)
