"""
Time utilities.

Provides millisecond timestamps for cache ages and token-bucket refills,
and an injectable clock so time-driven state can be tested deterministically.
"""

import time
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import Protocol


def get_timestamp_us() -> int:
    """
    Get current timestamp in microseconds.

    Returns:
        Current Unix timestamp in microseconds.
    """
    return time.time_ns() // 1000


def get_timestamp_ms() -> int:
    """
    Get current timestamp in milliseconds.

    Used for record timestamps (``ts``, ``updatedAt``) and all edge state.

    Returns:
        Current Unix timestamp in milliseconds.
    """
    return time.time_ns() // 1_000_000


class Clock(Protocol):
    """Source of the current time in epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock backed by :func:`get_timestamp_ms`."""

    __slots__ = ()

    def now_ms(self) -> int:
        return get_timestamp_ms()


def format_http_date(timestamp_ms: int) -> str:
    """
    Format an epoch-ms timestamp as an RFC 7231 HTTP-date.

    Example:
        >>> format_http_date(0)
        'Thu, 01 Jan 1970 00:00:00 GMT'
    """
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    return format_datetime(dt, usegmt=True)


def format_iso_timestamp(timestamp_ms: int) -> str:
    """
    Format an epoch-ms timestamp as ISO 8601 UTC with milliseconds.

    Example:
        >>> format_iso_timestamp(1_500)
        '1970-01-01T00:00:01.500Z'
    """
    dt = datetime.fromtimestamp(timestamp_ms // 1000, tz=UTC)
    return f"{dt.strftime('%Y-%m-%dT%H:%M:%S')}.{timestamp_ms % 1000:03d}Z"


class LatencyTimer:
    """
    Context manager for measuring operation latency.

    Example:
        >>> with LatencyTimer() as timer:
        ...     do_something()
        >>> print(f"Latency: {timer.latency_us}μs")
    """

    __slots__ = ("start_us", "end_us", "latency_us")

    def __init__(self) -> None:
        self.start_us: int = 0
        self.end_us: int = 0
        self.latency_us: int = 0

    def __enter__(self) -> "LatencyTimer":
        self.start_us = get_timestamp_us()
        return self

    def __exit__(self, *args: object) -> None:
        self.end_us = get_timestamp_us()
        self.latency_us = self.end_us - self.start_us
