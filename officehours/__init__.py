"""officehours: queue and helper-session engine for office-hours style help queues."""

from officehours.core.config import Config, load_config
from officehours.core.errors import OfficeHoursError, UsageError
from officehours.extensions.bus import ExtensionBus
from officehours.registry import ServerRegistry
from officehours.server import AttendingServer

__version__ = "0.1.0"

__all__ = [
    "AttendingServer",
    "Config",
    "ExtensionBus",
    "OfficeHoursError",
    "ServerRegistry",
    "UsageError",
    "load_config",
]
