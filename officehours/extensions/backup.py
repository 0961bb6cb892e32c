"""Queue backups: snapshot sink protocol, JSON file sink and the backup observer."""

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from officehours.core.clock import utc_now
from officehours.extensions.base import ExtensionMetadata
from officehours.model.identity import ServerId
from officehours.model.queue import QueueView
from officehours.model.snapshot import QueueSnapshot, ServerSnapshot

logger = logging.getLogger(__name__)


class SnapshotSink(Protocol):
    """Storage for server snapshots. The encoding is up to the sink."""

    def save_server(self, snapshot: ServerSnapshot) -> None: ...

    def save_queue(self, server_id: ServerId, snapshot: QueueSnapshot, server_name: str = "") -> None: ...

    def load_server(self, server_id: ServerId) -> ServerSnapshot | None: ...


class JsonFileSnapshotSink:
    """Stores one JSON document per server under a directory.

    Writes go to a temp file first and are renamed into place, so a crash
    mid-write never leaves a truncated backup behind.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def path_for(self, server_id: ServerId) -> Path:
        return self.directory / f"{server_id}.json"

    def save_server(self, snapshot: ServerSnapshot) -> None:
        with self._lock:
            self._write(snapshot)

    def save_queue(self, server_id: ServerId, snapshot: QueueSnapshot, server_name: str = "") -> None:
        """Insert or replace one queue in the server's stored snapshot."""
        with self._lock:
            current = self._read(server_id) or ServerSnapshot(
                server_id=server_id,
                server_name=server_name,
                timestamp=utc_now(),
            )
            self._write(current.with_queue(snapshot))

    def load_server(self, server_id: ServerId) -> ServerSnapshot | None:
        with self._lock:
            return self._read(server_id)

    def _read(self, server_id: ServerId) -> ServerSnapshot | None:
        path = self.path_for(server_id)
        if not path.exists():
            logger.debug(f"No backup found for server {server_id}: {path}")
            return None

        try:
            with path.open("r", encoding="utf-8") as f:
                data: dict[str, Any] = json.load(f)
            return ServerSnapshot.from_dict(data)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted backup file {path}: {e}")
            return None
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid backup format in {path}: {e}")
            return None

    def _write(self, snapshot: ServerSnapshot) -> None:
        path = self.path_for(snapshot.server_id)
        tmp_path = path.with_suffix(".tmp")

        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2, default=str)

        tmp_path.replace(path)
        logger.debug(f"Saved backup for server {snapshot.server_id} ({len(snapshot.queues)} queue(s))")


class BackupExtension:
    """Observer that persists a queue snapshot after every queue change.

    Because it runs as an ordinary observer, timer-driven clears are backed
    up exactly like user-driven ones. Sink errors propagate to the bus, which
    logs them.
    """

    metadata = ExtensionMetadata(
        name="backup",
        display_name="Queue Backup",
        description="Saves queue contents so they survive a restart",
    )

    def __init__(self, sink: SnapshotSink):
        self.sink = sink

    def _save(self, server: Any, view: QueueView) -> None:
        self.sink.save_queue(server.server_id, QueueSnapshot.from_view(view), server.name)

    def on_queue_create(self, server: Any, view: QueueView) -> None:
        self._save(server, view)

    def on_student_join(self, server: Any, view: QueueView, waiter: Any) -> None:
        self._save(server, view)

    def on_student_leave(self, server: Any, view: QueueView, waiter: Any) -> None:
        self._save(server, view)

    def on_dequeue_first(self, server: Any, view: QueueView, waiter: Any) -> None:
        self._save(server, view)

    def on_queue_clear(self, server: Any, view: QueueView, removed: Any) -> None:
        self._save(server, view)

    def on_queue_periodic_update(self, server: Any, view: QueueView, is_first_call: bool) -> None:
        self._save(server, view)

    def on_queue_settings_change(self, server: Any, view: QueueView) -> None:
        self._save(server, view)

    def on_queue_delete(self, server: Any, view: QueueView, evicted: Any) -> None:
        self.sink.save_server(server.snapshot())
