"""Telemetry module for logging and metrics."""

from arbedge.telemetry.logger import QueueLogging, setup_logging
from arbedge.telemetry.metrics import CacheStats, LatencyStats, MetricsCollector


__all__ = [
    "CacheStats",
    "LatencyStats",
    "MetricsCollector",
    "QueueLogging",
    "setup_logging",
]
