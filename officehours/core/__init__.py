"""Core functionality for officehours: config, logging, clock and errors."""

from officehours.core.clock import Clock, elapsed_ms, format_duration_ms, utc_now
from officehours.core.config import Config, load_config

__all__ = [
    "Clock",
    "Config",
    "elapsed_ms",
    "format_duration_ms",
    "load_config",
    "utc_now",
]
