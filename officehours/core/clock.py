"""Clock utilities.

Every component takes a ``clock`` callable so tests can control time; the
default is :func:`utc_now`.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]

_ONE_MS = timedelta(milliseconds=1)


def utc_now() -> datetime:
    """Get the current timezone-aware UTC datetime."""
    return datetime.now(UTC)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds between two datetimes (negative if end < start).

    Examples:
        >>> elapsed_ms(datetime(2026, 1, 1, 0, 0, 0), datetime(2026, 1, 1, 0, 0, 20))
        20000
    """
    return (end - start) // _ONE_MS


def format_duration_ms(duration_ms: int) -> str:
    """Format a millisecond duration for log output.

    Examples:
        >>> format_duration_ms(3_725_000)
        '1h 2m 5s'
        >>> format_duration_ms(42_000)
        '0h 0m 42s'
    """
    total_seconds = max(0, duration_ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"
