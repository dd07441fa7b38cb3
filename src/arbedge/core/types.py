"""
Type definitions for the edge request pipeline.

Dataclasses and enums for the mutable state the edge owns directly (cache
entries, rate buckets) and the request/response shapes that flow through
the cache gateway. Using slots=True for memory efficiency.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class CacheStatus(str, Enum):
    """Cache outcome reported in ``X-Cache-Status``."""

    HIT = "HIT"
    STALE = "STALE"
    MISS = "MISS"


class Freshness(str, Enum):
    """Lifecycle of a time-driven entry: Fresh -> Stale -> Expired."""

    FRESH = "FRESH"
    STALE = "STALE"
    EXPIRED = "EXPIRED"


# =============================================================================
# HTTP Shapes
# =============================================================================


@dataclass(slots=True, frozen=True)
class CacheRequest:
    """
    Transport-independent view of an inbound request.

    Header names are stored lower-cased.
    """

    method: str
    origin: str
    path: str
    query: tuple[tuple[str, str], ...] = ()
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def query_dict(self) -> dict[str, str]:
        """Query parameters as a dict (last value wins)."""
        return dict(self.query)


@dataclass(slots=True, frozen=True)
class CachedResponse:
    """
    Buffered HTTP response.

    Frozen so a stored entry can never be mutated by annotation; use
    :meth:`with_headers` to derive an annotated copy.
    """

    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    media_type: str = "application/json"

    def with_headers(self, updates: dict[str, str]) -> "CachedResponse":
        """Return a copy with ``updates`` merged into the headers."""
        headers = dict(self.headers)
        for name, value in updates.items():
            for existing in [k for k in headers if k.lower() == name.lower()]:
                del headers[existing]
            headers[name] = value
        return replace(self, headers=headers)

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


OriginHandler = Callable[[CacheRequest], Awaitable[CachedResponse]]


@dataclass(slots=True, frozen=True)
class RouteCacheConfig:
    """Per-route caching policy."""

    ttl_seconds: int
    stale_while_revalidate_seconds: int = 0
    vary_headers: tuple[str, ...] = ()
    key_fn: Callable[[CacheRequest], str] | None = None
    condition_fn: Callable[[CacheRequest], bool] | None = None

    @property
    def cache_control(self) -> str:
        directives = ["public", f"max-age={self.ttl_seconds}"]
        if self.stale_while_revalidate_seconds:
            directives.append(f"stale-while-revalidate={self.stale_while_revalidate_seconds}")
        return ", ".join(directives)


# =============================================================================
# Edge State
# =============================================================================


@dataclass(slots=True)
class CacheEntry:
    """A stored response and the policy it was stored under."""

    key: str
    response: CachedResponse
    stored_at_ms: int
    ttl_seconds: int
    swr_seconds: int

    def age_seconds(self, now_ms: int) -> int:
        """Whole seconds elapsed since storage (never negative)."""
        return max(0, (now_ms - self.stored_at_ms) // 1000)

    def freshness(self, now_ms: int) -> Freshness:
        age = self.age_seconds(now_ms)
        if age < self.ttl_seconds:
            return Freshness.FRESH
        if age < self.ttl_seconds + self.swr_seconds:
            return Freshness.STALE
        return Freshness.EXPIRED


@dataclass(slots=True, frozen=True)
class RateRule:
    """Bucket capacity and refill cadence."""

    window_ms: int
    tokens: int

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.tokens <= 0:
            raise ValueError("tokens must be positive")

    @classmethod
    def from_config(cls, rules: list[Any]) -> "RateRule | None":
        """
        Pick the first well-formed rule from a configured array.

        A rule is an object with numeric ``windowMs`` and ``tokens``.
        """
        for obj in rules:
            if not isinstance(obj, dict):
                continue
            window_ms = obj.get("windowMs")
            tokens = obj.get("tokens")
            if _is_number(window_ms) and _is_number(tokens):
                try:
                    return cls(window_ms=int(window_ms), tokens=int(tokens))
                except ValueError:
                    continue
        return None


@dataclass(slots=True)
class RateBucket:
    """Token balance for one client key."""

    tokens: int
    last_refill_ms: int


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
