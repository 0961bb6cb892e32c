"""Snapshot shapes handed to, and restored from, the persistence sink.

The encoding of a snapshot belongs to the sink. These classes only fix the
shape: a server snapshot lists its queues, and each queue lists its waiters
in queue order.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from officehours.model.identity import MemberId, QueueId, ServerId
from officehours.model.queue import QueueView, Waiter


@dataclass(frozen=True)
class WaiterSnapshot:
    """A waiter without its queue back-reference."""

    actor_id: MemberId
    wait_start: datetime
    help_topic: str | None = None

    @classmethod
    def from_waiter(cls, waiter: Waiter) -> "WaiterSnapshot":
        return cls(actor_id=waiter.actor_id, wait_start=waiter.wait_start, help_topic=waiter.help_topic)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "actor_id": self.actor_id,
            "wait_start": self.wait_start.isoformat(),
        }
        if self.help_topic is not None:
            data["help_topic"] = self.help_topic
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WaiterSnapshot":
        wait_start = datetime.fromisoformat(data["wait_start"])
        if wait_start.tzinfo is None:
            wait_start = wait_start.replace(tzinfo=UTC)
        return cls(
            actor_id=MemberId(data["actor_id"]),
            wait_start=wait_start,
            help_topic=data.get("help_topic"),
        )


@dataclass(frozen=True)
class QueueSnapshot:
    """Persistent state of one queue."""

    queue_id: QueueId
    topic_name: str
    parent_group_id: str
    waiting_list: tuple[WaiterSnapshot, ...] = ()
    auto_clear_minutes: float | None = None

    @classmethod
    def from_view(cls, view: QueueView) -> "QueueSnapshot":
        timeout = view.auto_clear_timeout
        return cls(
            queue_id=view.queue_id,
            topic_name=view.topic_name,
            parent_group_id=view.parent_group_id,
            waiting_list=tuple(WaiterSnapshot.from_waiter(w) for w in view.waiters),
            auto_clear_minutes=timeout.total_seconds() / 60 if timeout else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_id": self.queue_id,
            "topic_name": self.topic_name,
            "parent_group_id": self.parent_group_id,
            "waiting_list": [w.to_dict() for w in self.waiting_list],
            "auto_clear_minutes": self.auto_clear_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueSnapshot":
        """Parse a queue snapshot.

        ``queue_id`` is optional in older snapshots; the parent group id
        doubles as the queue id in that case.
        """
        parent_group_id = str(data["parent_group_id"])
        return cls(
            queue_id=QueueId(data.get("queue_id") or parent_group_id),
            topic_name=data["topic_name"],
            parent_group_id=parent_group_id,
            waiting_list=tuple(WaiterSnapshot.from_dict(w) for w in data.get("waiting_list", [])),
            auto_clear_minutes=data.get("auto_clear_minutes"),
        )


@dataclass(frozen=True)
class ServerSnapshot:
    """Persistent state of a whole server."""

    server_id: ServerId
    server_name: str
    timestamp: datetime
    queues: tuple[QueueSnapshot, ...] = ()

    def queue(self, queue_id: QueueId) -> QueueSnapshot | None:
        return next((q for q in self.queues if q.queue_id == queue_id), None)

    def with_queue(self, snapshot: QueueSnapshot) -> "ServerSnapshot":
        """Return a copy with one queue inserted or replaced, order preserved."""
        replaced = False
        queues: list[QueueSnapshot] = []
        for existing in self.queues:
            if existing.queue_id == snapshot.queue_id:
                queues.append(snapshot)
                replaced = True
            else:
                queues.append(existing)
        if not replaced:
            queues.append(snapshot)
        return ServerSnapshot(
            server_id=self.server_id,
            server_name=self.server_name,
            timestamp=datetime.now(UTC),
            queues=tuple(queues),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "server_name": self.server_name,
            "timestamp": self.timestamp.isoformat(),
            "queues": [q.to_dict() for q in self.queues],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerSnapshot":
        timestamp = data.get("timestamp")
        return cls(
            server_id=ServerId(data["server_id"]),
            server_name=data.get("server_name", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
            queues=tuple(QueueSnapshot.from_dict(q) for q in data.get("queues", [])),
        )
