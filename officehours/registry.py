"""ServerRegistry: the set of live servers in a process."""

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from officehours.core.config import Config, load_config, resolve_server_config
from officehours.core.errors import ServerAlreadyRegisteredError
from officehours.core.logging import setup_logging
from officehours.model.identity import ServerId
from officehours.server import AttendingServer

logger = logging.getLogger(__name__)


class ServerRegistry:
    """Explicit registry of AttendingServer instances keyed by server id.

    Example:
        >>> registry = ServerRegistry.from_config("config.yaml")
        >>> await registry.create_server(ServerId("guild-1"), name="CS101")
        >>> await registry.shutdown()
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        self._servers: dict[ServerId, AttendingServer] = {}

    @classmethod
    def from_config(
        cls,
        path: Path | str,
        overrides: dict[str, Any] | None = None,
    ) -> "ServerRegistry":
        """Load configuration from YAML, set up logging and build a registry.

        Raises:
            FileNotFoundError: If the config file doesn't exist.
            ValueError: If a ${VAR} reference cannot be resolved.
        """
        config = load_config(path, overrides=overrides)
        setup_logging(config.logging)
        logger.info(f"Loaded configuration from {path}")
        return cls(config)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._servers

    def __len__(self) -> int:
        return len(self._servers)

    @property
    def servers(self) -> tuple[AttendingServer, ...]:
        return tuple(self._servers.values())

    async def create_server(
        self,
        server_id: ServerId,
        name: str = "",
        extensions: Iterable[Any] = (),
    ) -> AttendingServer:
        """Create, restore and start a server, then register it.

        The server gets the registry config with its ``servers`` overrides
        applied.

        Raises:
            ServerAlreadyRegisteredError: If a server with the same id exists.
            ExtensionSetupError: If a built-in extension cannot be set up.
        """
        if server_id in self._servers:
            raise ServerAlreadyRegisteredError(f"Server {server_id} is already registered")
        config = resolve_server_config(self.config, server_id)
        server = await AttendingServer.create(server_id, name=name, config=config, extensions=extensions)
        self.register(server)
        return server

    def register(self, server: AttendingServer) -> None:
        """Add a server.

        Raises:
            ServerAlreadyRegisteredError: If a server with the same id exists.
        """
        if server.server_id in self._servers:
            raise ServerAlreadyRegisteredError(f"Server {server.server_id} is already registered")
        self._servers[server.server_id] = server
        logger.info(f"Registered server '{server.name}' ({server.server_id})")

    def unregister(self, server_id: ServerId) -> AttendingServer | None:
        """Drop a server without tearing it down."""
        server = self._servers.pop(server_id, None)
        if server is not None:
            logger.info(f"Unregistered server '{server.name}' ({server_id})")
        return server

    def get(self, server_id: ServerId) -> AttendingServer | None:
        return self._servers.get(server_id)

    async def remove(self, server_id: ServerId) -> bool:
        """Gracefully delete a server and unregister it.

        Returns:
            True if the server was registered.
        """
        server = self.unregister(server_id)
        if server is None:
            return False
        await server.graceful_delete()
        return True

    async def shutdown(self) -> None:
        """Stop every server, keeping queue contents for the next start.

        Logs errors but does not raise - shutdown should complete for all servers.
        """
        servers = list(self._servers.values())
        logger.info(f"Stopping {len(servers)} server(s)...")

        results = await asyncio.gather(
            *[server.stop() for server in servers],
            return_exceptions=True,
        )

        for server, result in zip(servers, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping server '{server.name}': {result}")

        self._servers.clear()
        logger.info("All servers stopped")
