"""Queue subsystem for officehours.

Provides the FIFO help queue and its auto-clear timer.
"""

from officehours.runtime.queue.auto_clear import AutoClearTimer
from officehours.runtime.queue.help_queue import HelpQueue

__all__ = ["AutoClearTimer", "HelpQueue"]
