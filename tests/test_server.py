"""Tests for AttendingServer."""

from datetime import timedelta

import pytest
from conftest import RecordingExtension

from officehours.core.config import Config, QueueDefaultsConfig
from officehours.core.errors import (
    AlreadyHelpingError,
    AlreadyInQueueError,
    NotHelpingError,
    NotInQueueError,
    NotServingQueueError,
    QueueAlreadyExistsError,
    QueueEmptyError,
    QueueNotFoundError,
)
from officehours.server import AttendingServer


@pytest.mark.asyncio
async def test_create_queue_announces_and_sends_first_update(server, recorder):
    queue = await server.create_queue("q1", "Lab Help", "g1")

    assert server.get_queue("q1") is queue
    assert recorder.hooks() == ["on_queue_create", "on_queue_periodic_update"]
    view, is_first_call = recorder.named("on_queue_periodic_update")[0]
    assert view.queue_id == "q1"
    assert is_first_call is True
    assert recorder.servers[0] is server


@pytest.mark.asyncio
async def test_create_duplicate_queue_raises(server):
    await server.create_queue("q1", "Lab Help")

    with pytest.raises(QueueAlreadyExistsError):
        await server.create_queue("q1", "Lab Help again")


def test_get_missing_queue_raises(server):
    with pytest.raises(QueueNotFoundError):
        server.get_queue("nope")


@pytest.mark.asyncio
async def test_parent_group_defaults_to_queue_id(server):
    queue = await server.create_queue("q1", "Lab Help")

    assert queue.parent_group_id == "q1"


@pytest.mark.asyncio
async def test_queue_uses_configured_auto_clear(clock):
    config = Config(queue=QueueDefaultsConfig(auto_clear_minutes=30, periodic_update_minutes=None))
    server = AttendingServer("guild-1", config=config, clock=clock)

    default = await server.create_queue("q1", "Lab Help")
    custom = await server.create_queue("q2", "Exams", auto_clear_timeout=timedelta(minutes=5))

    assert default.auto_clear_timeout == timedelta(minutes=30)
    assert custom.auto_clear_timeout == timedelta(minutes=5)


@pytest.mark.asyncio
async def test_multi_queue_membership_allowed_by_default(server):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")

    await server.enqueue("q1", "alice")
    await server.enqueue("q2", "alice")

    assert [q.queue_id for q in server.queues_of("alice")] == ["q1", "q2"]


@pytest.mark.asyncio
async def test_multi_queue_membership_can_be_disabled(clock):
    config = Config(queue=QueueDefaultsConfig(allow_multi_queue_membership=False, periodic_update_minutes=None))
    server = AttendingServer("guild-1", config=config, clock=clock)
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q1", "alice")

    with pytest.raises(AlreadyInQueueError) as exc_info:
        await server.enqueue("q2", "alice")

    assert exc_info.value.queue_name == "Lab Help"
    assert server.get_queue("q2").length == 0


@pytest.mark.asyncio
async def test_leave_all_queues(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q1", "alice")
    await server.enqueue("q2", "alice")
    await server.enqueue("q2", "carol")

    removed = await server.leave("alice")

    assert {w.queue_id for w in removed} == {"q1", "q2"}
    assert server.get_queue("q2").students[0].actor_id == "carol"
    assert len(recorder.named("on_student_leave")) == 2
    assert await server.leave("alice") == ()


@pytest.mark.asyncio
async def test_leave_single_queue(server):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q1", "alice")
    await server.enqueue("q2", "alice")

    await server.leave("alice", "q1")

    assert [q.queue_id for q in server.queues_of("alice")] == ["q2"]


@pytest.mark.asyncio
async def test_clear_all_queues(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q1", "alice")
    await server.enqueue("q2", "carol")

    cleared = await server.clear_all_queues()

    assert {qid: [w.actor_id for w in ws] for qid, ws in cleared.items()} == {"q1": ["alice"], "q2": ["carol"]}
    assert len(recorder.named("on_queue_clear")) == 2
    assert all(view.length == 0 for view in server.queues)


@pytest.mark.asyncio
async def test_notify_group(server):
    await server.create_queue("q1", "Lab Help")

    assert server.add_to_notify_group("q1", "alice") is True
    assert server.remove_from_notify_group("q1", "alice") is True
    with pytest.raises(QueueNotFoundError):
        server.add_to_notify_group("nope", "alice")


@pytest.mark.asyncio
async def test_start_helping_opens_queues(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")

    session = await server.start_helping("bob", ["q1"])

    assert session.served_queue_ids == frozenset({"q1"})
    assert server.get_queue("q1").is_open
    assert not server.get_queue("q2").is_open
    assert recorder.hooks()[-2:] == ["on_helper_start_helping", "on_queue_open"]


@pytest.mark.asyncio
async def test_start_helping_defaults_to_all_queues(server):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")

    session = await server.start_helping("bob")

    assert session.served_queue_ids == frozenset({"q1", "q2"})


@pytest.mark.asyncio
async def test_start_helping_unknown_queue_changes_nothing(server):
    await server.create_queue("q1", "Lab Help")

    with pytest.raises(QueueNotFoundError):
        await server.start_helping("bob", ["q1", "missing"])

    assert "bob" not in server.helpers
    assert not server.get_queue("q1").is_open


@pytest.mark.asyncio
async def test_start_helping_twice_raises(server):
    await server.create_queue("q1", "Lab Help")
    await server.start_helping("bob")

    with pytest.raises(AlreadyHelpingError):
        await server.start_helping("bob")


@pytest.mark.asyncio
async def test_stop_helping_closes_queues(server, clock, caplog):
    await server.create_queue("q1", "Lab Help")
    await server.start_helping("bob")
    clock.advance(minutes=61, seconds=5)

    with caplog.at_level("INFO"):
        session = await server.stop_helping("bob")

    assert session.duration_ms == (61 * 60 + 5) * 1000
    assert not server.get_queue("q1").is_open
    assert "bob helped for 1h 1m 5s" in caplog.text


@pytest.mark.asyncio
async def test_claim_global_first_picks_longest_wait(server, clock):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.create_queue("q3", "Not served")
    await server.enqueue("q3", "zoe")
    clock.advance(seconds=1)
    await server.enqueue("q2", "carol")
    clock.advance(seconds=1)
    await server.enqueue("q1", "alice")
    await server.start_helping("bob", ["q1", "q2"])

    first = await server.claim("bob")
    second = await server.claim("bob")

    assert (first.actor_id, second.actor_id) == ("carol", "alice")
    with pytest.raises(QueueEmptyError):
        await server.claim("bob")
    assert server.get_queue("q3").length == 1


@pytest.mark.asyncio
async def test_claim_specific_student_across_served_queues(server):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q1", "alice")
    await server.enqueue("q2", "carol")
    await server.start_helping("bob")

    waiter = await server.claim("bob", student_id="carol")

    assert waiter.queue_id == "q2"
    with pytest.raises(NotInQueueError):
        await server.claim("bob", student_id="mallory")


@pytest.mark.asyncio
async def test_claim_from_named_queue(server):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q1", "alice")
    await server.enqueue("q2", "carol")
    await server.start_helping("bob")

    waiter = await server.claim("bob", "q2")

    assert waiter.actor_id == "carol"


@pytest.mark.asyncio
async def test_claim_without_session_raises(server):
    await server.create_queue("q1", "Lab Help")
    await server.enqueue("q1", "alice")

    with pytest.raises(NotHelpingError):
        await server.claim("bob")


@pytest.mark.asyncio
async def test_delete_queue(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.enqueue("q1", "alice")

    evicted = await server.delete_queue("q1")

    assert [w.actor_id for w in evicted] == ["alice"]
    assert server.queue_ids == ()
    assert len(recorder.named("on_queue_delete")) == 1
    with pytest.raises(QueueNotFoundError):
        await server.delete_queue("q1")


@pytest.mark.asyncio
async def test_set_queue_auto_clear(server, recorder):
    queue = await server.create_queue("q1", "Lab Help")

    await server.set_queue_auto_clear("q1", 15)
    assert queue.auto_clear_timeout == timedelta(minutes=15)
    (view,) = recorder.named("on_queue_settings_change")[0]
    assert view.auto_clear_timeout == timedelta(minutes=15)

    await server.set_queue_auto_clear("q1", None)
    assert queue.auto_clear_timeout is None
    assert not queue.auto_clear_pending

    with pytest.raises(ValueError):
        await server.set_queue_auto_clear("q1", 0)
    assert len(recorder.named("on_queue_settings_change")) == 2


@pytest.mark.asyncio
async def test_run_periodic_update(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")

    await server.run_periodic_update()

    updates = recorder.named("on_queue_periodic_update")
    assert [(view.queue_id, first) for view, first in updates] == [
        ("q1", True),
        ("q2", True),
        ("q1", False),
        ("q2", False),
    ]


@pytest.mark.asyncio
async def test_snapshot_and_restore_into_new_server(server, clock):
    await server.create_queue("q1", "Lab Help", "g1", auto_clear_timeout=timedelta(minutes=10))
    await server.enqueue("q1", "alice")
    clock.advance(seconds=30)
    await server.enqueue("q1", "carol")

    snapshot = server.snapshot()
    other = AttendingServer("guild-1", config=server.config, clock=clock)
    restored = await other.restore(snapshot)

    queue = other.get_queue("q1")
    assert restored == 2
    assert [w.actor_id for w in queue.students] == ["alice", "carol"]
    assert queue.students[1].wait_start == server.get_queue("q1").students[1].wait_start
    assert queue.auto_clear_timeout == timedelta(minutes=10)
    assert queue.auto_clear_pending
    queue.shutdown()


@pytest.mark.asyncio
async def test_restore_without_sink_is_noop(server):
    assert await server.restore() == 0


@pytest.mark.asyncio
async def test_graceful_delete(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.enqueue("q1", "alice")
    await server.start_helping("bob")

    await server.graceful_delete()

    assert server.queue_ids == ()
    assert server.helpers == {}
    hooks = recorder.hooks()
    assert hooks.index("on_helper_stop_helping") < hooks.index("on_queue_delete")
    assert hooks[-1] == "on_server_delete"


@pytest.mark.asyncio
async def test_failing_extension_never_breaks_operation(clock):
    class Broken:
        def on_student_join(self, server, view, waiter):
            raise RuntimeError("boom")

    recorder = RecordingExtension()
    server = AttendingServer(
        "guild-1",
        config=Config(queue=QueueDefaultsConfig(periodic_update_minutes=None)),
        clock=clock,
        extensions=[Broken(), recorder],
    )
    await server.create_queue("q1", "Lab Help")

    waiter = await server.enqueue("q1", "alice")

    assert waiter.actor_id == "alice"
    assert len(recorder.named("on_student_join")) == 1


@pytest.mark.asyncio
async def test_usage_error_brief_names_queue(server):
    await server.create_queue("q1", "Lab Help")
    await server.start_helping("bob", ["q1"])

    with pytest.raises(QueueEmptyError) as exc_info:
        await server.claim("bob", "q1")

    assert exc_info.value.brief() == "QueueEmptyError in 'Lab Help': There is no one in the queue"


@pytest.mark.asyncio
async def test_claim_from_queue_not_served_is_rejected(server, recorder):
    await server.create_queue("q1", "Lab Help")
    await server.create_queue("q2", "Exams")
    await server.enqueue("q2", "carol")
    await server.start_helping("bob", ["q1"])

    with pytest.raises(NotServingQueueError) as exc_info:
        await server.claim("bob", "q2")

    assert exc_info.value.queue_name == "Exams"
    assert [w.actor_id for w in server.get_queue("q2").students] == ["carol"]
    assert server.sessions.just_claimed == {}
    assert recorder.named("on_dequeue_first") == []


@pytest.mark.asyncio
async def test_rejected_async_hook_never_breaks_operation(config, clock):
    class BrokenAsync:
        async def on_student_join(self, server, view, waiter):
            raise RuntimeError("async boom")

    recorder = RecordingExtension()
    server = AttendingServer("guild-1", config=config, clock=clock, extensions=[BrokenAsync(), recorder])
    await server.create_queue("q1", "Lab Help")

    waiter = await server.enqueue("q1", "alice")

    assert waiter.actor_id == "alice"
    assert server.get_queue("q1").length == 1
    assert len(recorder.named("on_student_join")) == 1
