"""Unit tests for metrics collection and queue-based logging."""

import logging
from pathlib import Path

from arbedge.telemetry.logger import QueueLogging, setup_logging
from arbedge.telemetry.metrics import LatencyStats, MetricsCollector


class TestLatencyStats:
    """Tests for latency summaries."""

    def test_empty(self) -> None:
        assert LatencyStats.from_samples([]) == LatencyStats()

    def test_percentiles(self) -> None:
        stats = LatencyStats.from_samples(range(1, 101))

        assert stats.count == 100
        assert stats.min_us == 1
        assert stats.max_us == 100
        assert stats.p50_us == 51
        assert stats.p99_us == 100
        assert stats.mean_us == 50.5


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_latency_window_is_bounded(self) -> None:
        metrics = MetricsCollector(latency_window_size=3)
        for sample in (100, 200, 300, 400):
            metrics.record_latency("GET /health", sample)

        assert metrics.latency("GET /health").min_us == 200

    def test_record_request_counts_status_class(self) -> None:
        metrics = MetricsCollector()
        metrics.record_request("GET /api/opportunities", 200, 50)
        metrics.record_request("GET /api/opportunities", 429, 10)

        assert metrics.get_counter("http_2xx") == 1
        assert metrics.get_counter("http_4xx") == 1
        assert metrics.latency("GET /api/opportunities").count == 2

    def test_cache_outcomes(self) -> None:
        metrics = MetricsCollector()
        for status in ("HIT", "HIT", "STALE", "MISS", "BYPASS"):
            metrics.record_cache_status(status)

        assert metrics.cache_stats.hit_ratio == 0.75
        assert metrics.cache_stats.bypassed == 1

    def test_snapshot_and_reset(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("proxy_forwarded", 3)
        metrics.record_latency("GET /", 10)

        snapshot = metrics.snapshot()
        metrics.reset()

        assert snapshot["counters"] == {"proxy_forwarded": 3}
        assert snapshot["latencies"]["GET /"]["count"] == 1  # type: ignore[index]
        assert metrics.get_counter("proxy_forwarded") == 0
        assert metrics.latencies() == {}


class TestQueueLogging:
    """Tests for queue-based logging."""

    def test_records_reach_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "edge.log"
        queue_logging = setup_logging("INFO", log_file)
        try:
            logging.getLogger("arbedge.edge.cache").debug("cache entry evicted")
            logging.getLogger("arbedge.api.server").warning("engine degraded")
        finally:
            queue_logging.stop()

        content = log_file.read_text()
        assert "cache entry evicted" in content
        assert "WARNING  | arbedge.api.server | engine degraded" in content

    def test_stop_detaches_handler(self) -> None:
        with QueueLogging(loggers=("arbedge.test",)) as queue_logging:
            assert queue_logging.running
            assert logging.getLogger("arbedge.test").handlers

        assert not queue_logging.running
        assert logging.getLogger("arbedge.test").handlers == []
        assert logging.getLogger("arbedge.test").propagate is True
