"""Extension system for officehours.

Provides the event bus that fans lifecycle events out to observers, plus the
built-in backup and activity-tracking observers.
"""

from officehours.extensions.backup import BackupExtension, JsonFileSnapshotSink, SnapshotSink
from officehours.extensions.base import LIFECYCLE_HOOKS, ExtensionMetadata, extension_name, implemented_hooks
from officehours.extensions.bus import ExtensionBus
from officehours.extensions.tracking import ActivityTrackingExtension, JsonlTrackingStore

__all__ = [
    "LIFECYCLE_HOOKS",
    "ActivityTrackingExtension",
    "BackupExtension",
    "ExtensionBus",
    "ExtensionMetadata",
    "JsonFileSnapshotSink",
    "JsonlTrackingStore",
    "SnapshotSink",
    "extension_name",
    "implemented_hooks",
]
