"""Logging for officehours: process-wide setup and server/queue scoped loggers.

Records emitted through a :class:`ServerLogAdapter` carry ``server_id`` and
``queue_id`` attributes. Handlers installed here render them as a
``[server/queue]`` prefix so one log file can hold many servers.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from officehours.core.config.models import LoggingConfig

SERVER_LOGGER_PREFIX = "officehours.server"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(context)s%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ServerContextFilter(logging.Filter):
    """Sets ``record.context`` from the server and queue a record concerns.

    Records without server context (library modules, third-party code) get an
    empty prefix, so the same formatter works for every record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        server_id = getattr(record, "server_id", None)
        queue_id = getattr(record, "queue_id", None)
        if server_id and queue_id:
            record.context = f"[{server_id}/{queue_id}] "
        elif server_id or queue_id:
            record.context = f"[{server_id or queue_id}] "
        else:
            record.context = ""
        return True


class ServerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps records with a server id and optional queue id."""

    def __init__(self, logger: logging.Logger, server_id: str | None, queue_id: str | None = None):
        super().__init__(logger, {"server_id": server_id, "queue_id": queue_id})

    @property
    def server_id(self) -> str | None:
        return self.extra["server_id"]

    @property
    def queue_id(self) -> str | None:
        return self.extra["queue_id"]

    def for_queue(self, queue_id: str) -> "ServerLogAdapter":
        """Same underlying logger, scoped to one queue of the server."""
        return ServerLogAdapter(self.logger, self.server_id, queue_id)

    def process(self, msg: Any, kwargs: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def _file_handler(path: Path, config: LoggingConfig) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=config.max_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter())
    handler.addFilter(ServerContextFilter())
    return handler


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure the root logger with console and rotating file handlers.

    Args:
        config: Logging settings (defaults apply when None).
    """
    config = config or LoggingConfig()
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)

    # Clear any existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_formatter())
    console_handler.addFilter(ServerContextFilter())
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_file_handler(log_dir / "officehours.log", config))

    logging.info(f"Logging initialized: level={config.level}, directory={log_dir}")


def setup_server_logger(server_id: str, config: LoggingConfig | None = None) -> ServerLogAdapter:
    """Give a server its own log file.

    The server's logger stops propagating to the root logger, so its records
    (queue records included) land only in ``<directory>/<server_id>.log`` and
    on the console.

    Returns:
        Adapter for the configured server logger.
    """
    config = config or LoggingConfig()
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)

    server_logger = logging.getLogger(f"{SERVER_LOGGER_PREFIX}.{server_id}")

    # Prevent duplicate handlers if logger already exists
    if server_logger.handlers:
        return ServerLogAdapter(server_logger, server_id)

    server_logger.propagate = False
    server_logger.setLevel(config.level)
    server_logger.addHandler(_file_handler(log_dir / f"{server_id}.log", config))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_formatter())
    console_handler.addFilter(ServerContextFilter())
    server_logger.addHandler(console_handler)

    return ServerLogAdapter(server_logger, server_id)


def get_server_logger(server_id: str, queue_id: str | None = None) -> ServerLogAdapter:
    """Get the logger for a server, optionally scoped to one of its queues.

    Falls back to an ordinary propagating logger when
    :func:`setup_server_logger` was never called for this server.
    """
    return ServerLogAdapter(logging.getLogger(f"{SERVER_LOGGER_PREFIX}.{server_id}"), server_id, queue_id)
