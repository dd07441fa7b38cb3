"""Edge request pipeline: response cache, refresh queue and rate limiter."""

from arbedge.edge.cache import CacheGateway, CacheStore, build_cache_key
from arbedge.edge.rate_limiter import BucketStore, PathRateLimits, TokenBucketLimiter, client_key
from arbedge.edge.refresh import RefreshQueue


__all__ = [
    "BucketStore",
    "CacheGateway",
    "CacheStore",
    "PathRateLimits",
    "RefreshQueue",
    "TokenBucketLimiter",
    "build_cache_key",
    "client_key",
]
