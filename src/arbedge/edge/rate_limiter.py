"""
Token bucket rate limiter for inbound clients.

Each client key owns a bucket holding up to ``rule.tokens`` tokens. Refills
happen in whole windows only: a partial window never grants partial credit.
State is process-local; under several workers every process enforces its
own limit, so limits are approximate across a horizontally scaled edge.
"""

import logging
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass

from arbedge.config.constants import API_RATE_EXEMPT, API_RATE_SCOPE, DEFAULT_MAX_BUCKETS, UNKNOWN_CLIENT_KEY
from arbedge.config.settings import Settings
from arbedge.core.types import RateBucket, RateRule
from arbedge.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


class BucketStore:
    """
    LRU-bounded map of client key to bucket.

    Evicting a bucket forgets the client; its next request starts full.
    """

    def __init__(self, max_buckets: int = DEFAULT_MAX_BUCKETS) -> None:
        if max_buckets < 1:
            raise ValueError("max_buckets must be at least 1")
        self._max_buckets = max_buckets
        self._buckets: OrderedDict[str, RateBucket] = OrderedDict()

    def get(self, key: str) -> RateBucket | None:
        bucket = self._buckets.get(key)
        if bucket is not None:
            self._buckets.move_to_end(key)
        return bucket

    def put(self, key: str, bucket: RateBucket) -> None:
        self._buckets[key] = bucket
        self._buckets.move_to_end(key)
        while len(self._buckets) > self._max_buckets:
            evicted, _ = self._buckets.popitem(last=False)
            logger.debug(f"Evicted rate bucket {evicted}")

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, key: object) -> bool:
        return key in self._buckets


class TokenBucketLimiter:
    """
    Per-key token bucket.

    ``consume`` is synchronous and never awaits, so on a single event loop
    the read-refill-decrement sequence for a key is atomic.
    """

    def __init__(self, store: BucketStore | None = None, clock: Clock | None = None) -> None:
        self._store = store if store is not None else BucketStore()
        self._clock = clock or SystemClock()

    def consume(self, key: str, rule: RateRule | None) -> bool:
        """
        Try to take one token from ``key``'s bucket.

        Args:
            key: Client identity.
            rule: Capacity and refill cadence; ``None`` disables limiting.

        Returns:
            True if the request is allowed.
        """
        if rule is None:
            return True

        now = self._clock.now_ms()
        bucket = self._store.get(key)
        if bucket is None:
            bucket = RateBucket(tokens=rule.tokens, last_refill_ms=now)

        elapsed_windows = max(0, now - bucket.last_refill_ms) // rule.window_ms
        bucket.tokens = min(rule.tokens, bucket.tokens + elapsed_windows * rule.tokens)
        bucket.last_refill_ms = now

        if bucket.tokens <= 0:
            self._store.put(key, bucket)
            return False

        bucket.tokens -= 1
        self._store.put(key, bucket)
        return True

    def remaining(self, key: str, rule: RateRule) -> int:
        """Tokens currently held by ``key`` (full for an unseen key), without refilling."""
        bucket = self._store.get(key)
        return rule.tokens if bucket is None else bucket.tokens

    def reset_at(self, key: str, rule: RateRule) -> int:
        """Epoch ms at which ``key``'s next whole-window refill becomes due."""
        bucket = self._store.get(key)
        last_refill = self._clock.now_ms() if bucket is None else bucket.last_refill_ms
        return last_refill + rule.window_ms

    @property
    def store(self) -> BucketStore:
        return self._store


def client_key(headers: Mapping[str, str], peer: str | None) -> str:
    """
    Derive the rate-limit identity of a request.

    Order: first hop of ``X-Forwarded-For``, then the direct peer address,
    then a shared ``"unknown"`` bucket. Unidentifiable clients therefore
    share one bucket.
    """
    forwarded = None
    for name, value in headers.items():
        if name.lower() == "x-forwarded-for":
            forwarded = value
            break
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if peer:
        return peer
    return UNKNOWN_CLIENT_KEY


@dataclass(slots=True, frozen=True)
class PathRateLimits:
    """
    Rate rules for inbound API routes, matched by path prefix.

    Paths outside ``scope`` or under an ``exempt`` prefix are unlimited. The
    first matching prefix wins (a ``None`` rule leaves it unlimited); other
    in-scope paths use ``default``.
    """

    rules: tuple[tuple[str, RateRule | None], ...] = ()
    default: RateRule | None = None
    scope: str = API_RATE_SCOPE
    exempt: tuple[str, ...] = API_RATE_EXEMPT

    @classmethod
    def from_settings(cls, settings: Settings) -> "PathRateLimits":
        def rule(tokens: int) -> RateRule | None:
            return RateRule(window_ms=settings.api_rate_window_ms, tokens=tokens) if tokens > 0 else None

        return cls(
            rules=(
                ("/api/opportunities", rule(settings.api_rate_limit_opportunities)),
                ("/api/assets", rule(settings.api_rate_limit_assets)),
            ),
            default=rule(settings.api_rate_limit_default),
        )

    def rule_for(self, path: str) -> RateRule | None:
        if not _under(path, self.scope) or any(_under(path, p) for p in self.exempt):
            return None
        for prefix, rule in self.rules:
            if path.startswith(prefix):
                return rule
        return self.default


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")
