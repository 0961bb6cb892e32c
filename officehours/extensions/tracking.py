"""Helper activity tracking: attendance and help-session records in JSONL."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from officehours.core.clock import elapsed_ms, utc_now
from officehours.core.errors import ExtensionSetupError
from officehours.extensions.base import ExtensionMetadata
from officehours.model.helper import HelperSession, HelpSessionEntry

logger = logging.getLogger(__name__)


class JsonlTrackingStore:
    """Append-only JSONL files for attendance and help sessions.

    Files:
        attendance.jsonl: one line per completed helper session.
        help_sessions.jsonl: one line per completed help session.
    """

    ATTENDANCE_FILE = "attendance.jsonl"
    HELP_SESSIONS_FILE = "help_sessions.jsonl"

    def __init__(self, directory: str | Path):
        """Initialize the store.

        Raises:
            ExtensionSetupError: If the directory cannot be created.
        """
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtensionSetupError(f"Cannot use tracking directory {self.directory}: {e}") from e

        self._attendance_path = self.directory / self.ATTENDANCE_FILE
        self._help_sessions_path = self.directory / self.HELP_SESSIONS_FILE
        self._lock = threading.Lock()

    def record_attendance(self, server_id: str, session: HelperSession) -> None:
        """Append a completed helper session."""
        self._append(self._attendance_path, {"server_id": server_id, **session.to_dict()})

    def record_help_session(self, server_id: str, entry: HelpSessionEntry) -> None:
        """Append a completed help session."""
        self._append(
            self._help_sessions_path,
            {
                "server_id": server_id,
                **entry.to_dict(),
                "session_duration_ms": entry.session_duration_ms,
            },
        )

    def _append(self, path: Path, entry: dict[str, Any]) -> None:
        try:
            line = json.dumps({"recorded_at": utc_now().isoformat(), **entry}) + "\n"
            with self._lock:
                with open(path, "a", encoding="utf-8") as f:
                    f.write(line)
        except Exception as e:
            logger.warning(f"Failed to write tracking entry to {path.name}: {e}")

    def read_attendance(self, server_id: str | None = None) -> list[dict[str, Any]]:
        return self._read(self._attendance_path, server_id)

    def read_help_sessions(self, server_id: str | None = None) -> list[dict[str, Any]]:
        return self._read(self._help_sessions_path, server_id)

    def summarize_helpers(self, server_id: str | None = None) -> dict[str, dict[str, int]]:
        """Aggregate attendance per helper.

        Returns:
            Mapping of helper id to totals: ``sessions``, ``help_time_ms``,
            ``active_time_ms`` and ``students_helped``.
        """
        summary: dict[str, dict[str, int]] = {}
        for record in self.read_attendance(server_id):
            if not record.get("help_end"):
                continue
            totals = summary.setdefault(
                record["helper_id"],
                {"sessions": 0, "help_time_ms": 0, "active_time_ms": 0, "students_helped": 0},
            )
            start = datetime.fromisoformat(record["help_start"])
            end = datetime.fromisoformat(record["help_end"])
            totals["sessions"] += 1
            totals["help_time_ms"] += elapsed_ms(start, end)
            totals["active_time_ms"] += record.get("active_time_ms", 0)
            totals["students_helped"] += len(record.get("helped_members", []))
        return summary

    def _read(self, path: Path, server_id: str | None) -> list[dict[str, Any]]:
        if not path.exists():
            return []

        entries: list[dict[str, Any]] = []
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError as e:
                        logger.debug(f"Skipping malformed tracking entry: {e}")
                        continue
                    if server_id is None or entry.get("server_id") == server_id:
                        entries.append(entry)
        except Exception as e:
            logger.warning(f"Failed to read tracking file {path.name}: {e}")

        return entries


class ActivityTrackingExtension:
    """Observer that records helper attendance and completed help sessions."""

    metadata = ExtensionMetadata(
        name="activity_tracking",
        display_name="Helper Activity Tracking",
        description="Records helper attendance and help sessions",
    )

    def __init__(self, store: JsonlTrackingStore, enabled: bool = True):
        self.store = store
        self.enabled = enabled

    def on_helper_stop_helping(self, server: Any, session: HelperSession) -> None:
        if not self.enabled:
            return
        self.store.record_attendance(server.server_id, session)

    def on_student_leave_presence(self, server: Any, entry: HelpSessionEntry) -> None:
        if not self.enabled:
            return
        self.store.record_help_session(server.server_id, entry)
