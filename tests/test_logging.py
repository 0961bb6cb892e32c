"""Tests for logging setup and server/queue scoped loggers."""

import logging

import pytest

from officehours.core.config import LoggingConfig
from officehours.core.logging import (
    SERVER_LOGGER_PREFIX,
    ServerContextFilter,
    get_server_logger,
    setup_logging,
    setup_server_logger,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_setup_logging_creates_file(tmp_path, restore_root_logger):
    setup_logging(LoggingConfig(level="debug", directory=str(tmp_path / "logs")))

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    assert (tmp_path / "logs" / "officehours.log").exists()


@pytest.mark.parametrize(
    ("extra", "context"),
    [
        ({}, ""),
        ({"server_id": "guild-1", "queue_id": None}, "[guild-1] "),
        ({"server_id": "guild-1", "queue_id": "q1"}, "[guild-1/q1] "),
    ],
)
def test_context_filter(extra, context):
    record = _record(**extra)

    assert ServerContextFilter().filter(record) is True
    assert record.context == context


def test_server_logger_writes_queue_context(tmp_path):
    log = setup_server_logger("guild-iso", LoggingConfig(directory=str(tmp_path)))
    server_logger = log.logger

    try:
        assert server_logger.name == f"{SERVER_LOGGER_PREFIX}.guild-iso"
        assert server_logger.propagate is False
        assert get_server_logger("guild-iso").logger is server_logger
        # Second setup reuses the existing handlers
        setup_server_logger("guild-iso", LoggingConfig(directory=str(tmp_path)))
        assert len(server_logger.handlers) == 2

        log.for_queue("q1").warning("queue closed")
        for handler in server_logger.handlers:
            handler.flush()
        assert "[guild-iso/q1] queue closed" in (tmp_path / "guild-iso.log").read_text()
    finally:
        for handler in list(server_logger.handlers):
            handler.close()
            server_logger.removeHandler(handler)
        server_logger.propagate = True


@pytest.mark.asyncio
async def test_server_records_carry_server_and_queue(server, caplog):
    with caplog.at_level(logging.INFO):
        await server.create_queue("q1", "Lab Help")
        await server.start_helping("bob", ["q1"])

    created = next(r for r in caplog.records if r.getMessage().startswith("Created queue"))
    opened = next(r for r in caplog.records if "opened by bob" in r.getMessage())
    started = next(r for r in caplog.records if "started helping" in r.getMessage())
    assert (created.server_id, created.queue_id) == ("guild-1", None)
    assert (opened.server_id, opened.queue_id) == ("guild-1", "q1")
    assert started.server_id == "guild-1"
