"""officehours domain models - pure records.

Immutable dataclasses describing queues, waiters, helper sessions and
snapshots. Everything an extension receives comes from this package.
"""

from officehours.model.helper import (
    ActiveTime,
    HelperSession,
    HelpSessionEntry,
    JustClaimed,
    PendingHelpSession,
)
from officehours.model.identity import MemberId, QueueId, ServerId
from officehours.model.queue import QueueView, Waiter
from officehours.model.snapshot import QueueSnapshot, ServerSnapshot, WaiterSnapshot

__all__ = [
    # Identity
    "MemberId",
    "QueueId",
    "ServerId",
    # Queue
    "QueueView",
    "Waiter",
    # Helper
    "ActiveTime",
    "HelperSession",
    "HelpSessionEntry",
    "JustClaimed",
    "PendingHelpSession",
    # Snapshot
    "QueueSnapshot",
    "ServerSnapshot",
    "WaiterSnapshot",
]
