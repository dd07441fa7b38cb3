"""Core module containing records, edge state types, errors and the response envelope."""

from arbedge.core.envelope import envelope_for_error, error_envelope, success_envelope
from arbedge.core.errors import (
    ApiError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ProxyError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from arbedge.core.models import (
    AssetSafety,
    CheckResult,
    Opportunity,
    OpportunityFilters,
    OpportunityPage,
    OpportunityQuery,
    RugpullResult,
    SafetyChecks,
    ScoredOpportunity,
)
from arbedge.core.types import (
    CacheEntry,
    CachedResponse,
    CacheRequest,
    CacheStatus,
    Freshness,
    RateBucket,
    RateRule,
    RouteCacheConfig,
)


__all__ = [
    "ApiError",
    "AssetSafety",
    "CacheEntry",
    "CacheRequest",
    "CacheStatus",
    "CachedResponse",
    "CheckResult",
    "ForbiddenError",
    "Freshness",
    "InternalError",
    "NotFoundError",
    "Opportunity",
    "OpportunityFilters",
    "OpportunityPage",
    "OpportunityQuery",
    "ProxyError",
    "RateBucket",
    "RateLimitError",
    "RateRule",
    "RouteCacheConfig",
    "RugpullResult",
    "SafetyChecks",
    "ScoredOpportunity",
    "UpstreamError",
    "ValidationError",
    "envelope_for_error",
    "error_envelope",
    "success_envelope",
]
