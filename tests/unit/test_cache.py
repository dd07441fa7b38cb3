"""
Unit tests for the stale-while-revalidate response cache.

Tests freshness classification, header annotation, key normalization,
background refresh and invalidation.
"""

import asyncio

import pytest

from arbedge.core.types import CachedResponse, CacheEntry, CacheRequest, Freshness, RouteCacheConfig
from arbedge.edge.cache import CacheGateway, CacheStore, build_cache_key
from arbedge.edge.refresh import RefreshQueue
from arbedge.telemetry.metrics import MetricsCollector
from tests.mocks import ManualClock
from tests.mocks.data import json_response, make_request


class CountingOrigin:
    """Origin handler that numbers its responses."""

    def __init__(self, status: int = 200) -> None:
        self.calls = 0
        self.status = status
        self.fail = False

    async def __call__(self, request: CacheRequest) -> CachedResponse:
        self.calls += 1
        if self.fail:
            raise RuntimeError("origin exploded")
        return json_response(f'{{"n":{self.calls}}}'.encode(), status=self.status)


class GatedOrigin(CountingOrigin):
    """Counting origin that waits for ``gate`` before answering."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()

    async def __call__(self, request: CacheRequest) -> CachedResponse:
        self.calls += 1
        calls = self.calls
        await self.gate.wait()
        return json_response(f'{{"n":{calls}}}'.encode(), status=self.status)


class TestCacheEntry:
    """Tests for entry age and freshness."""

    @pytest.mark.parametrize(
        ("elapsed_ms", "expected"),
        [
            (0, Freshness.FRESH),
            (4_999, Freshness.FRESH),
            (5_000, Freshness.STALE),
            (14_999, Freshness.STALE),
            (15_000, Freshness.EXPIRED),
        ],
    )
    def test_freshness_boundaries(self, elapsed_ms: int, expected: Freshness) -> None:
        entry = CacheEntry(
            key="k", response=json_response(), stored_at_ms=0, ttl_seconds=5, swr_seconds=10
        )

        assert entry.freshness(elapsed_ms) is expected

    def test_age_never_negative(self) -> None:
        entry = CacheEntry(key="k", response=json_response(), stored_at_ms=10_000, ttl_seconds=5, swr_seconds=0)

        assert entry.age_seconds(0) == 0

    def test_zero_swr_expires_at_ttl(self) -> None:
        entry = CacheEntry(key="k", response=json_response(), stored_at_ms=0, ttl_seconds=5, swr_seconds=0)

        assert entry.freshness(5_000) is Freshness.EXPIRED


class TestRouteCacheConfig:
    """Tests for the Cache-Control header a route advertises."""

    @pytest.mark.parametrize(
        ("ttl", "swr", "expected"),
        [
            (5, 10, "public, max-age=5, stale-while-revalidate=10"),
            (0, 10, "public, max-age=0, stale-while-revalidate=10"),
            (30, 0, "public, max-age=30"),
            (0, 0, "public, max-age=0"),
        ],
    )
    def test_cache_control(self, ttl: int, swr: int, expected: str) -> None:
        route = RouteCacheConfig(ttl_seconds=ttl, stale_while_revalidate_seconds=swr)

        assert route.cache_control == expected


class TestCacheKey:
    """Tests for cache key normalization."""

    def test_query_order_does_not_matter(self, route: RouteCacheConfig) -> None:
        a = make_request(query=(("limit", "10"), ("chainId", "1")))
        b = make_request(query=(("chainId", "1"), ("limit", "10")))

        assert build_cache_key(a, route) == build_cache_key(b, route)

    def test_vary_header_splits_keys(self, route: RouteCacheConfig) -> None:
        json_req = make_request(headers={"Accept": "application/json"})
        text_req = make_request(headers={"Accept": "text/plain"})

        assert build_cache_key(json_req, route) != build_cache_key(text_req, route)

    def test_non_vary_header_ignored(self, route: RouteCacheConfig) -> None:
        a = make_request(headers={"User-Agent": "a"})
        b = make_request(headers={"User-Agent": "b"})

        assert build_cache_key(a, route) == build_cache_key(b, route)

    def test_custom_key_fn(self) -> None:
        route = RouteCacheConfig(ttl_seconds=5, key_fn=lambda r: f"custom:{r.path}")

        assert build_cache_key(make_request(), route) == "custom:/api/opportunities"


class TestCacheStore:
    """Tests for the LRU-bounded store."""

    def test_evicts_least_recently_used(self) -> None:
        store = CacheStore(max_entries=2)
        for key in ("a", "b"):
            store.put(CacheEntry(key=key, response=json_response(), stored_at_ms=0, ttl_seconds=5, swr_seconds=0))
        store.get("a")
        store.put(CacheEntry(key="c", response=json_response(), stored_at_ms=0, ttl_seconds=5, swr_seconds=0))

        assert store.keys() == ["a", "c"]


class TestCacheGateway:
    """Tests for CacheGateway."""

    @pytest.fixture
    def metrics(self) -> MetricsCollector:
        return MetricsCollector()

    @pytest.fixture
    def gateway(self, clock: ManualClock, metrics: MetricsCollector) -> CacheGateway:
        return CacheGateway(store=CacheStore(), clock=clock, refresher=RefreshQueue(metrics=metrics), metrics=metrics)

    @pytest.fixture
    def origin(self) -> CountingOrigin:
        return CountingOrigin()

    async def test_miss_then_hit(self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin) -> None:
        first = await gateway.handle(make_request(), route, origin)
        second = await gateway.handle(make_request(), route, origin)

        assert first.header("X-Cache-Status") == "MISS"
        assert second.header("X-Cache-Status") == "HIT"
        assert second.header("Age") == "0"
        assert second.body == first.body
        assert origin.calls == 1

    async def test_miss_is_stamped(self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin) -> None:
        response = await gateway.handle(make_request(), route, origin)

        assert response.header("Cache-Control") == "public, max-age=5, stale-while-revalidate=10"
        assert response.header("Vary") == "Accept"
        assert response.header("Date") == "Mon, 01 Jan 2024 00:00:00 GMT"

    async def test_stored_entry_is_not_annotated(
        self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin
    ) -> None:
        await gateway.handle(make_request(), route, origin)
        await gateway.handle(make_request(), route, origin)

        (key,) = gateway.store.keys()
        stored = gateway.store.get(key)
        assert stored is not None
        assert stored.response.header("X-Cache-Status") is None
        assert stored.response.header("Age") is None

    async def test_stale_serves_old_body_and_refreshes_once(
        self,
        gateway: CacheGateway,
        route: RouteCacheConfig,
        origin: CountingOrigin,
        clock: ManualClock,
    ) -> None:
        await gateway.handle(make_request(), route, origin)
        clock.advance(6_000)

        first = await gateway.handle(make_request(), route, origin)
        second = await gateway.handle(make_request(), route, origin)

        assert first.header("X-Cache-Status") == "STALE"
        assert first.header("Age") == "6"
        assert first.body == b'{"n":1}'
        assert second.header("X-Cache-Status") == "STALE"
        assert gateway.refresher.pending_count == 1

        await gateway.refresher.drain()

        assert origin.calls == 2
        refreshed = await gateway.handle(make_request(), route, origin)
        assert refreshed.header("X-Cache-Status") == "HIT"
        assert refreshed.body == b'{"n":2}'

    async def test_expired_entry_goes_to_origin(
        self,
        gateway: CacheGateway,
        route: RouteCacheConfig,
        origin: CountingOrigin,
        clock: ManualClock,
    ) -> None:
        await gateway.handle(make_request(), route, origin)
        clock.advance(15_000)

        response = await gateway.handle(make_request(), route, origin)

        assert response.header("X-Cache-Status") == "MISS"
        assert response.body == b'{"n":2}'

    async def test_non_200_is_not_stored(self, gateway: CacheGateway, route: RouteCacheConfig) -> None:
        origin = CountingOrigin(status=400)

        response = await gateway.handle(make_request(), route, origin)
        await gateway.handle(make_request(), route, origin)

        assert response.header("X-Cache-Status") is None
        assert origin.calls == 2
        assert len(gateway.store) == 0

    async def test_post_bypasses_cache(self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin) -> None:
        await gateway.handle(make_request(method="POST"), route, origin)
        await gateway.handle(make_request(method="POST"), route, origin)

        assert origin.calls == 2
        assert len(gateway.store) == 0

    async def test_condition_fn_bypasses(
        self, gateway: CacheGateway, origin: CountingOrigin, metrics: MetricsCollector
    ) -> None:
        route = RouteCacheConfig(ttl_seconds=5, condition_fn=lambda r: r.header("authorization") is None)
        request = make_request(headers={"Authorization": "Bearer x"})

        await gateway.handle(request, route, origin)
        await gateway.handle(request, route, origin)

        assert origin.calls == 2
        assert metrics.cache_stats.bypassed == 2

    async def test_failed_refresh_keeps_stale_entry(
        self,
        gateway: CacheGateway,
        route: RouteCacheConfig,
        origin: CountingOrigin,
        clock: ManualClock,
        metrics: MetricsCollector,
    ) -> None:
        await gateway.handle(make_request(), route, origin)
        clock.advance(6_000)
        origin.fail = True

        await gateway.handle(make_request(), route, origin)
        await gateway.refresher.drain()

        response = await gateway.handle(make_request(), route, origin)
        assert response.header("X-Cache-Status") == "STALE"
        assert response.body == b'{"n":1}'
        assert metrics.cache_stats.refreshes_failed >= 1

        await gateway.refresher.drain()

    async def test_write_failure_still_serves(
        self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin, metrics: MetricsCollector
    ) -> None:
        class BrokenStore(CacheStore):
            def put(self, entry: CacheEntry) -> None:
                raise OSError("disk full")

        broken = CacheGateway(store=BrokenStore(), clock=ManualClock(0), metrics=metrics)

        response = await broken.handle(make_request(), route, origin)

        assert response.status == 200
        assert response.header("X-Cache-Status") == "MISS"
        assert metrics.cache_stats.write_failures == 1

    async def test_invalidate_by_path(self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin) -> None:
        await gateway.handle(make_request("/api/opportunities"), route, origin)
        await gateway.handle(make_request("/api/assets/safety"), route, origin)

        removed = gateway.invalidate("/api/assets/safety")

        assert removed == 1
        assert len(gateway.store) == 1

    async def test_invalidate_discards_in_flight_refresh(
        self, gateway: CacheGateway, route: RouteCacheConfig, clock: ManualClock
    ) -> None:
        origin = GatedOrigin()
        await gateway.handle(make_request(), route, origin)
        clock.advance(6_000)
        origin.gate.clear()

        stale = await gateway.handle(make_request(), route, origin)
        await asyncio.sleep(0)
        assert origin.calls == 2

        gateway.invalidate("/api/opportunities")
        origin.gate.set()
        await gateway.refresher.drain()

        assert stale.header("X-Cache-Status") == "STALE"
        assert len(gateway.store) == 0
        fresh = await gateway.handle(make_request(), route, origin)
        assert fresh.header("X-Cache-Status") == "MISS"
        assert fresh.body == b'{"n":3}'

    async def test_refresh_after_invalidation_is_stored(
        self, gateway: CacheGateway, route: RouteCacheConfig, origin: CountingOrigin, clock: ManualClock
    ) -> None:
        await gateway.handle(make_request(), route, origin)
        gateway.invalidate("/api/opportunities")
        await gateway.handle(make_request(), route, origin)
        clock.advance(6_000)

        await gateway.handle(make_request(), route, origin)
        await gateway.refresher.drain()

        assert len(gateway.store) == 1
        assert (await gateway.handle(make_request(), route, origin)).body == b'{"n":3}'


class TestStaleScenario:
    """Entry stored at t=0 with ttl=5, swr=10."""

    async def test_stale_then_miss_without_refresh(self, route: RouteCacheConfig) -> None:
        clock = ManualClock(0)
        refresher = RefreshQueue()
        gateway = CacheGateway(store=CacheStore(), clock=clock, refresher=refresher)
        origin = CountingOrigin()
        await gateway.handle(make_request(), route, origin)

        clock.set(7_000)
        stale = await gateway.handle(make_request(), route, origin)
        await refresher.cancel_all()

        clock.set(20_000)
        expired = await gateway.handle(make_request(), route, origin)

        assert stale.header("X-Cache-Status") == "STALE"
        assert stale.body == b'{"n":1}'
        assert expired.header("X-Cache-Status") == "MISS"
        assert expired.body == b'{"n":2}'
