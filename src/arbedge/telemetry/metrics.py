"""
In-process metrics for the edge.

Per-route request latencies are kept in bounded rolling windows; cache
outcomes, refresh results and free-form event counters (proxy rejections,
safety-check failures, engine degradations) are plain integers. Everything
is process-local and exposed through the health endpoint.
"""

import time
from collections import deque
from collections.abc import Iterable
from dataclasses import asdict, dataclass


@dataclass(slots=True)
class LatencyStats:
    """Summary of one route's latency window, in microseconds."""

    count: int = 0
    min_us: int = 0
    max_us: int = 0
    mean_us: float = 0.0
    p50_us: int = 0
    p95_us: int = 0
    p99_us: int = 0

    @classmethod
    def from_samples(cls, samples: Iterable[int]) -> "LatencyStats":
        ordered = sorted(samples)
        if not ordered:
            return cls()

        def percentile(q: float) -> int:
            return ordered[min(len(ordered) - 1, int(len(ordered) * q))]

        return cls(
            count=len(ordered),
            min_us=ordered[0],
            max_us=ordered[-1],
            mean_us=sum(ordered) / len(ordered),
            p50_us=percentile(0.50),
            p95_us=percentile(0.95),
            p99_us=percentile(0.99),
        )


@dataclass(slots=True)
class CacheStats:
    """Response cache outcome counts."""

    hits: int = 0
    stale: int = 0
    misses: int = 0
    bypassed: int = 0
    refreshes_succeeded: int = 0
    refreshes_failed: int = 0
    write_failures: int = 0

    @property
    def hit_ratio(self) -> float:
        """Share of cache-gated requests answered from a stored entry."""
        served = self.hits + self.stale + self.misses
        return (self.hits + self.stale) / served if served else 0.0

    def record(self, status: str) -> None:
        if status == "HIT":
            self.hits += 1
        elif status == "STALE":
            self.stale += 1
        elif status == "MISS":
            self.misses += 1
        else:
            self.bypassed += 1


class MetricsCollector:
    """
    Collects edge metrics.

    Args:
        latency_window_size: Samples kept per route for latency summaries.
    """

    def __init__(self, latency_window_size: int = 1000) -> None:
        self._window_size = latency_window_size
        self._latencies: dict[str, deque[int]] = {}
        self._counters: dict[str, int] = {}
        self._cache_stats = CacheStats()
        self._started = time.monotonic()

    # =========================================================================
    # Requests
    # =========================================================================

    def record_latency(self, route: str, latency_us: int) -> None:
        """Add a sample to ``route``'s window (e.g. ``"GET /api/opportunities"``)."""
        window = self._latencies.get(route)
        if window is None:
            window = self._latencies[route] = deque(maxlen=self._window_size)
        window.append(latency_us)

    def record_request(self, route: str, status_code: int, latency_us: int) -> None:
        """Record a served request: its latency plus an ``http_<N>xx`` counter."""
        self.record_latency(route, latency_us)
        self.increment_counter(f"http_{status_code // 100}xx")

    def latency(self, route: str) -> LatencyStats:
        return LatencyStats.from_samples(self._latencies.get(route, ()))

    def latencies(self) -> dict[str, LatencyStats]:
        return {route: LatencyStats.from_samples(window) for route, window in self._latencies.items()}

    # =========================================================================
    # Counters
    # =========================================================================

    def increment_counter(self, name: str, value: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + value

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    # =========================================================================
    # Cache
    # =========================================================================

    def record_cache_status(self, status: str) -> None:
        """Count a cache-gated request as HIT, STALE, MISS or anything else (bypass)."""
        self._cache_stats.record(status)

    def record_refresh(self, success: bool) -> None:
        if success:
            self._cache_stats.refreshes_succeeded += 1
        else:
            self._cache_stats.refreshes_failed += 1

    def record_cache_write_failure(self) -> None:
        self._cache_stats.write_failures += 1

    @property
    def cache_stats(self) -> CacheStats:
        return self._cache_stats

    # =========================================================================
    # Export
    # =========================================================================

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    def snapshot(self) -> dict[str, object]:
        """JSON-ready view of every metric."""
        return {
            "uptimeSeconds": round(self.uptime_seconds, 3),
            "counters": dict(self._counters),
            "latencies": {route: asdict(stats) for route, stats in self.latencies().items()},
            "cache": {**asdict(self._cache_stats), "hit_ratio": self._cache_stats.hit_ratio},
        }

    def reset(self) -> None:
        self._latencies.clear()
        self._counters.clear()
        self._cache_stats = CacheStats()
        self._started = time.monotonic()
