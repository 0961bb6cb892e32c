"""Opaque identity types shared across the engine."""

from typing import NewType

MemberId = NewType("MemberId", str)
"""Identity of any participant (student or helper)."""

QueueId = NewType("QueueId", str)
"""Identity of a help queue."""

ServerId = NewType("ServerId", str)
"""Identity of the community server that owns a set of queues."""
