"""Shared fixtures: a controllable clock and an observer that records every event."""

import logging
from datetime import UTC, datetime, timedelta

import pytest

from officehours.core.config import Config, QueueDefaultsConfig
from officehours.extensions.base import LIFECYCLE_HOOKS
from officehours.extensions.bus import ExtensionBus
from officehours.server import AttendingServer

T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Set the clock to T0 + seconds."""
        self.now = T0 + timedelta(seconds=seconds)
        return self.now


class RecordingExtension:
    """Observer implementing every hook; stores (hook, args) without the server."""

    def __init__(self) -> None:
        self.events: list[tuple[str, tuple]] = []
        self.servers: list[object] = []

    def named(self, hook: str) -> list[tuple]:
        return [args for name, args in self.events if name == hook]

    def hooks(self) -> list[str]:
        return [name for name, _ in self.events]


def _recorder(hook: str):
    def record(self, server, *args):
        self.servers.append(server)
        self.events.append((hook, args))

    record.__name__ = hook
    return record


for _hook in LIFECYCLE_HOOKS:
    setattr(RecordingExtension, _hook, _recorder(_hook))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> RecordingExtension:
    return RecordingExtension()


@pytest.fixture
def bus(recorder) -> ExtensionBus:
    bus = ExtensionBus(owner="server")
    bus.register(recorder)
    return bus


@pytest.fixture
def config() -> Config:
    return Config(queue=QueueDefaultsConfig(periodic_update_minutes=None))


@pytest.fixture
def server(clock, recorder, config) -> AttendingServer:
    return AttendingServer("guild-1", name="CS101", config=config, clock=clock, extensions=[recorder])


@pytest.fixture
def restore_root_logger():
    """Put the root logger's handlers and level back after a test reconfigures logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
