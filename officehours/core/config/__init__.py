"""Configuration package for officehours.

This package provides Pydantic configuration models and loading utilities.
"""

from officehours.core.config.loader import (
    check_unexpanded_vars,
    expand_env_vars,
    load_config,
    merge_configs,
    resolve_server_config,
)
from officehours.core.config.models import (
    BackupConfig,
    Config,
    LoggingConfig,
    QueueDefaultsConfig,
    TrackingConfig,
)

__all__ = [
    # Models
    "BackupConfig",
    "Config",
    "LoggingConfig",
    "QueueDefaultsConfig",
    "TrackingConfig",
    # Loaders
    "check_unexpanded_vars",
    "expand_env_vars",
    "load_config",
    "merge_configs",
    "resolve_server_config",
]
