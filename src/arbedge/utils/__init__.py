"""Utility functions for the edge layer."""

from arbedge.utils.math import clamp, round_half_up
from arbedge.utils.time import (
    Clock,
    SystemClock,
    format_http_date,
    format_iso_timestamp,
    get_timestamp_ms,
    get_timestamp_us,
)


__all__ = [
    "Clock",
    "SystemClock",
    "clamp",
    "format_http_date",
    "format_iso_timestamp",
    "get_timestamp_ms",
    "get_timestamp_us",
    "round_half_up",
]
