"""
Stale-while-revalidate response cache.

Sits in front of any GET/HEAD origin handler. Entry age is compared against
the route's ``ttl`` and ``ttl + swr``:

- ``age < ttl``: HIT, served as stored.
- ``ttl <= age < ttl + swr``: STALE, served as stored while a single
  background refresh is scheduled.
- ``age >= ttl + swr`` or no entry: MISS, the origin runs synchronously and
  a 200 response is stored.

Only headers are ever annotated; bodies pass through byte-for-byte. The
store is process-local, so freshness is per worker under horizontal scaling.
"""

import logging
from collections import OrderedDict
from urllib.parse import urlencode

from arbedge.config.constants import CACHE_STATUS_HEADER, DEFAULT_CACHE_MAX_ENTRIES
from arbedge.core.types import (
    CachedResponse,
    CacheEntry,
    CacheRequest,
    CacheStatus,
    Freshness,
    OriginHandler,
    RouteCacheConfig,
)
from arbedge.edge.refresh import RefreshQueue
from arbedge.telemetry.metrics import MetricsCollector
from arbedge.utils.time import Clock, SystemClock, format_http_date


logger = logging.getLogger(__name__)

CACHEABLE_METHODS = frozenset({"GET", "HEAD"})


class CacheStore:
    """
    LRU-bounded map of cache key to entry.

    Eviction bounds memory only; it never changes how a present entry is
    classified.
    """

    def __init__(self, max_entries: int = DEFAULT_CACHE_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def put(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry
        self._entries.move_to_end(entry.key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cache entry {evicted}")

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


def build_cache_key(request: CacheRequest, route: RouteCacheConfig) -> str:
    """
    Normalize a request into its cache signature.

    ``origin + path + "?" + sorted query + "#" + vary header values``. Query
    parameters are sorted and vary headers are read in the route's declared
    order, so neither parameter order nor header order changes the key.
    """
    if route.key_fn is not None:
        return route.key_fn(request)

    query = urlencode(sorted(request.query))
    vary = "|".join(f"{name}:{request.header(name) or ''}" for name in route.vary_headers)
    return f"{request.origin}{request.path}?{query}#{vary}"


class CacheGateway:
    """
    HTTP-semantics cache in front of origin handlers.

    Owns an explicitly injected store, clock and refresh queue so that each
    process (or test) works with its own isolated state.
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        clock: Clock | None = None,
        refresher: RefreshQueue | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._store = store if store is not None else CacheStore()
        self._clock = clock or SystemClock()
        self._metrics = metrics
        self._refresher = refresher or RefreshQueue(metrics=metrics)
        self._invalidated: set[str] = set()

    async def handle(
        self,
        request: CacheRequest,
        route: RouteCacheConfig,
        origin: OriginHandler,
    ) -> CachedResponse:
        """
        Serve ``request`` through the cache.

        Args:
            request: Normalized inbound request.
            route: Caching policy for the route.
            origin: Handler producing a fresh response.

        Returns:
            The stored, stale, or freshly produced response.
        """
        if request.method.upper() not in CACHEABLE_METHODS:
            return await origin(request)

        if route.condition_fn is not None and not route.condition_fn(request):
            self._record("BYPASS")
            return await origin(request)

        key = build_cache_key(request, route)
        now = self._clock.now_ms()
        entry = self._store.get(key)

        if entry is not None:
            freshness = entry.freshness(now)
            age = str(entry.age_seconds(now))

            if freshness is Freshness.FRESH:
                self._record(CacheStatus.HIT.value)
                return entry.response.with_headers(
                    {CACHE_STATUS_HEADER: CacheStatus.HIT.value, "Age": age}
                )

            if freshness is Freshness.STALE:
                self._record(CacheStatus.STALE.value)
                self._schedule_refresh(key, request, route, origin)
                return entry.response.with_headers(
                    {CACHE_STATUS_HEADER: CacheStatus.STALE.value, "Age": age}
                )

        response = await origin(request)
        if response.status != 200:
            return response

        stored = self._stamp(response, route, now)
        self._write(key, stored, route, now)
        self._record(CacheStatus.MISS.value)
        return stored.with_headers({CACHE_STATUS_HEADER: CacheStatus.MISS.value})

    def invalidate(self, pattern: str) -> int:
        """
        Drop every entry whose key contains ``pattern``.

        Refreshes already in flight for matching keys finish, but their
        results are discarded instead of stored.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for key in self._store.keys():
            if pattern in key and self._store.delete(key):
                removed += 1
        self._invalidated.update(k for k in self._refresher.pending_keys() if pattern in k)
        if removed:
            logger.info(f"Invalidated {removed} cache entries matching {pattern!r}")
        return removed

    def _schedule_refresh(
        self,
        key: str,
        request: CacheRequest,
        route: RouteCacheConfig,
        origin: OriginHandler,
    ) -> None:
        async def refresh() -> bool:
            try:
                response = await origin(request)
            finally:
                invalidated = key in self._invalidated
                self._invalidated.discard(key)
            if invalidated:
                logger.debug(f"Dropped refresh result for {key}, invalidated while in flight")
                return True
            if response.status != 200:
                return False
            now = self._clock.now_ms()
            return self._write(key, self._stamp(response, route, now), route, now)

        if self._refresher.schedule(key, refresh):
            # Marks left by a refresh cancelled before it ran
            self._invalidated.discard(key)

    def _stamp(self, response: CachedResponse, route: RouteCacheConfig, now_ms: int) -> CachedResponse:
        headers = {
            "Cache-Control": route.cache_control,
            "Date": format_http_date(now_ms),
        }
        if route.vary_headers:
            headers["Vary"] = ", ".join(route.vary_headers)
        return response.with_headers(headers)

    def _write(
        self,
        key: str,
        response: CachedResponse,
        route: RouteCacheConfig,
        now_ms: int,
    ) -> bool:
        try:
            self._store.put(
                CacheEntry(
                    key=key,
                    response=response,
                    stored_at_ms=now_ms,
                    ttl_seconds=route.ttl_seconds,
                    swr_seconds=route.stale_while_revalidate_seconds,
                )
            )
        except Exception as e:
            logger.error(f"Cache write failed for {key}: {e}")
            if self._metrics:
                self._metrics.record_cache_write_failure()
            return False
        return True

    def _record(self, status: str) -> None:
        if self._metrics:
            self._metrics.record_cache_status(status)

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def refresher(self) -> RefreshQueue:
        return self._refresher
