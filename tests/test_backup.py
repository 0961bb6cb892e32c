"""Tests for JsonFileSnapshotSink and BackupExtension."""

import asyncio
import json
from datetime import timedelta

import pytest
from conftest import T0

from officehours.core.config import Config, QueueDefaultsConfig
from officehours.extensions.backup import BackupExtension, JsonFileSnapshotSink
from officehours.model.snapshot import QueueSnapshot, ServerSnapshot, WaiterSnapshot
from officehours.server import AttendingServer


@pytest.fixture
def sink(tmp_path):
    return JsonFileSnapshotSink(tmp_path / "backups")


@pytest.fixture
def config():
    return Config(queue=QueueDefaultsConfig(periodic_update_minutes=None))


def test_load_missing_backup(sink):
    assert sink.load_server("guild-1") is None


def test_save_queue_creates_server_document(sink):
    queue = QueueSnapshot("q1", "Lab Help", "g1", (WaiterSnapshot("alice", T0),))

    sink.save_queue("guild-1", queue, server_name="CS101")

    loaded = sink.load_server("guild-1")
    assert loaded.server_name == "CS101"
    assert loaded.queues == (queue,)
    assert not sink.path_for("guild-1").with_suffix(".tmp").exists()


def test_save_queue_replaces_existing_entry(sink):
    sink.save_queue("guild-1", QueueSnapshot("q1", "Lab Help", "g1", (WaiterSnapshot("alice", T0),)))
    sink.save_queue("guild-1", QueueSnapshot("q2", "Exams", "g2"))
    sink.save_queue("guild-1", QueueSnapshot("q1", "Lab Help", "g1"))

    loaded = sink.load_server("guild-1")
    assert [q.queue_id for q in loaded.queues] == ["q1", "q2"]
    assert loaded.queue("q1").waiting_list == ()


def test_save_server_overwrites(sink):
    sink.save_queue("guild-1", QueueSnapshot("q1", "Lab Help", "g1"))

    sink.save_server(ServerSnapshot("guild-1", "CS101", T0, ()))

    assert sink.load_server("guild-1").queues == ()


def test_corrupted_backup_is_ignored(sink):
    sink.path_for("guild-1").write_text("{not json")

    assert sink.load_server("guild-1") is None


def test_backup_file_is_plain_json(sink):
    sink.save_queue("guild-1", QueueSnapshot("q1", "Lab Help", "g1", (WaiterSnapshot("alice", T0, "loops"),)))

    data = json.loads(sink.path_for("guild-1").read_text())

    assert data["queues"][0]["waiting_list"] == [
        {"actor_id": "alice", "wait_start": T0.isoformat(), "help_topic": "loops"}
    ]


@pytest.mark.asyncio
async def test_queue_changes_are_backed_up(sink, config, clock):
    server = AttendingServer("guild-1", name="CS101", config=config, clock=clock, snapshot_sink=sink)
    assert isinstance(server.bus.extensions[0], BackupExtension)

    await server.create_queue("q1", "Lab Help", "g1")
    await server.enqueue("q1", "alice")
    await server.enqueue("q1", "carol")
    assert [w.actor_id for w in sink.load_server("guild-1").queue("q1").waiting_list] == ["alice", "carol"]

    await server.leave("carol")
    assert len(sink.load_server("guild-1").queue("q1").waiting_list) == 1

    await server.clear_queue("q1")
    assert sink.load_server("guild-1").queue("q1").waiting_list == ()


@pytest.mark.asyncio
async def test_timer_driven_clear_is_backed_up(sink, config, clock):
    server = AttendingServer("guild-1", config=config, clock=clock, snapshot_sink=sink)
    await server.create_queue("q1", "Lab Help", auto_clear_timeout=timedelta(milliseconds=20))
    await server.start_helping("bob")
    await server.enqueue("q1", "alice")

    await server.stop_helping("bob")
    await asyncio.sleep(0.1)

    assert sink.load_server("guild-1").queue("q1").waiting_list == ()


@pytest.mark.asyncio
async def test_auto_clear_change_is_backed_up(sink, config, clock):
    server = AttendingServer("guild-1", config=config, clock=clock, snapshot_sink=sink)
    await server.create_queue("q1", "Lab Help")

    await server.set_queue_auto_clear("q1", 15)

    assert sink.load_server("guild-1").queue("q1").auto_clear_minutes == 15
    await server.stop()


@pytest.mark.asyncio
async def test_deleted_queue_removed_from_backup(sink, config, clock):
    server = AttendingServer("guild-1", config=config, clock=clock, snapshot_sink=sink)
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")

    await server.delete_queue("q1")

    assert [q.queue_id for q in sink.load_server("guild-1").queues] == ["q2"]


@pytest.mark.asyncio
async def test_sink_failure_does_not_break_enqueue(config, clock, caplog):
    class BrokenSink:
        def save_server(self, snapshot):
            raise OSError("disk full")

        def save_queue(self, server_id, snapshot, server_name=""):
            raise OSError("disk full")

        def load_server(self, server_id):
            return None

    server = AttendingServer("guild-1", config=config, clock=clock, snapshot_sink=BrokenSink())
    await server.create_queue("q1", "Lab Help")

    waiter = await server.enqueue("q1", "alice")

    assert waiter.actor_id == "alice"
    assert "'backup' failed during on_student_join" in caplog.text


@pytest.mark.asyncio
async def test_restore_from_sink(sink, config, clock):
    sink.save_queue(
        "guild-1",
        QueueSnapshot(
            "q1",
            "Lab Help",
            "g1",
            (WaiterSnapshot("carol", T0 + timedelta(seconds=5)), WaiterSnapshot("alice", T0)),
        ),
    )
    server = AttendingServer("guild-1", config=config, clock=clock, snapshot_sink=sink)

    restored = await server.restore()

    assert restored == 2
    assert [w.actor_id for w in server.get_queue("q1").students] == ["alice", "carol"]
    assert server.get_queue("q1").parent_group_id == "g1"
