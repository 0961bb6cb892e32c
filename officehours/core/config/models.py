"""Pydantic configuration models for officehours.

This module defines all configuration models used throughout officehours.
For loading and merging logic, see loader.py.
"""

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, Field, field_validator


class QueueDefaultsConfig(BaseModel):
    """Defaults applied to every queue of a server."""

    auto_clear_minutes: float | None = Field(
        default=None,
        description="Minutes after the last helper leaves before the queue is emptied (None disables)",
    )
    allow_multi_queue_membership: bool = Field(
        default=True,
        description="Allow a student to wait in more than one queue at a time",
    )
    periodic_update_minutes: int | None = Field(
        default=60,
        description="Minutes between periodic queue updates sent to extensions (None disables)",
    )

    @field_validator("auto_clear_minutes")
    @classmethod
    def validate_auto_clear_minutes(cls, v: float | None) -> float | None:
        """Auto clear needs a positive delay; use None to disable it."""
        if v is not None and v <= 0:
            raise ValueError(f"auto_clear_minutes must be positive, got {v}. Use null to disable.")
        return v

    @field_validator("periodic_update_minutes")
    @classmethod
    def validate_periodic_update_minutes(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError(f"periodic_update_minutes must be positive, got {v}. Use null to disable.")
        return v

    @property
    def auto_clear_timeout(self) -> timedelta | None:
        if self.auto_clear_minutes is None:
            return None
        return timedelta(minutes=self.auto_clear_minutes)


class BackupConfig(BaseModel):
    """Configuration for the snapshot backup extension."""

    enabled: bool = Field(default=False, description="Snapshot queues after every change")
    directory: str = Field(default="backups", description="Directory for JSON snapshot files")


class TrackingConfig(BaseModel):
    """Configuration for helper activity tracking."""

    enabled: bool = Field(default=False, description="Record attendance and help sessions")
    directory: str = Field(default="tracking", description="Directory for JSONL tracking files")


class LoggingConfig(BaseModel):
    """Configuration for logging system."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    directory: str = Field(default="logs", description="Directory for log files")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")
    per_server: bool = Field(default=True, description="Create separate log files per server")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate level is a standard logging level name."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Invalid logging level '{v}'. Use one of: {', '.join(sorted(allowed))}")
        return v.upper()


class Config(BaseModel):
    """Root configuration for officehours."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")
    queue: QueueDefaultsConfig = Field(default_factory=QueueDefaultsConfig, description="Queue defaults")
    backup: BackupConfig = Field(default_factory=BackupConfig, description="Snapshot backup configuration")
    tracking: TrackingConfig = Field(default_factory=TrackingConfig, description="Activity tracking configuration")
    servers: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-server overrides keyed by server id, merged over the sections above",
    )

    model_config = {"extra": "allow"}
