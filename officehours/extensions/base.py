"""Extension hook catalogue and metadata.

An extension is any object that implements some subset of the lifecycle
hooks below. There is no base class to inherit from: the bus looks each hook
up by name and skips observers that do not define it. Hooks may be plain
functions or coroutines. Every hook receives the owning server first.

Hook signatures:

    on_queue_create(server, view)
    on_queue_open(server, view)
    on_queue_close(server, view)
    on_queue_clear(server, view, removed)
    on_student_join(server, view, waiter)
    on_student_leave(server, view, waiter)
    on_dequeue_first(server, view, waiter)
    on_helper_start_helping(server, session)
    on_helper_stop_helping(server, session)
    on_student_join_presence(server, student_id, helper_ids)
    on_student_leave_presence(server, entry)
    on_queue_delete(server, view, evicted)
    on_server_delete(server)
    on_queue_periodic_update(server, view, is_first_call)
    on_queue_settings_change(server, view)
"""

from dataclasses import dataclass
from typing import Any

LIFECYCLE_HOOKS: frozenset[str] = frozenset(
    {
        "on_queue_create",
        "on_queue_open",
        "on_queue_close",
        "on_queue_clear",
        "on_student_join",
        "on_student_leave",
        "on_dequeue_first",
        "on_helper_start_helping",
        "on_helper_stop_helping",
        "on_student_join_presence",
        "on_student_leave_presence",
        "on_queue_delete",
        "on_server_delete",
        "on_queue_periodic_update",
        "on_queue_settings_change",
    }
)


@dataclass(frozen=True)
class ExtensionMetadata:
    """Metadata describing an extension.

    Attributes:
        name: Internal identifier (e.g., "activity_tracking").
        display_name: Human-readable name (e.g., "Helper Activity Tracking").
        description: What the extension does.
    """

    name: str
    display_name: str
    description: str = ""


def extension_name(extension: Any) -> str:
    """Name used to identify an extension in logs."""
    metadata = getattr(extension, "metadata", None)
    if isinstance(metadata, ExtensionMetadata):
        return metadata.name
    return type(extension).__name__


def implemented_hooks(extension: Any) -> frozenset[str]:
    """Return the lifecycle hooks an extension actually provides."""
    return frozenset(hook for hook in LIFECYCLE_HOOKS if callable(getattr(extension, hook, None)))
