"""Runtime services for officehours.

This package provides queues, helper session management and scheduling.
"""

from officehours.runtime.queue.auto_clear import AutoClearTimer
from officehours.runtime.queue.help_queue import HelpQueue
from officehours.runtime.scheduling.periodic import PeriodicUpdateScheduler
from officehours.runtime.session.manager import SessionLifecycleManager

__all__ = [
    "AutoClearTimer",
    "HelpQueue",
    "PeriodicUpdateScheduler",
    "SessionLifecycleManager",
]
