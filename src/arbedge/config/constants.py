"""
Edge constants and default configuration values.

Values are organized by category; anything operators are expected to tune
is surfaced again through :mod:`arbedge.config.settings`.
"""

from typing import Final


# =============================================================================
# Engine API
# =============================================================================

DEFAULT_ENGINE_URL: Final[str] = "http://127.0.0.1:8080"
USER_AGENT: Final[str] = "arbedge/1.0.0"

ENDPOINT_OPPORTUNITIES: Final[str] = "/api/opportunities"
ENDPOINT_TOKEN_LIQUIDITY: Final[str] = "/api/tokens/liquidity"
ENDPOINT_TOKEN_VERIFICATION: Final[str] = "/api/tokens/verification"
ENDPOINT_TOKEN_HOLDERS: Final[str] = "/api/tokens/holders"
ENDPOINT_TOKEN_VOLUME: Final[str] = "/api/tokens/volume"
ENDPOINT_TOKEN_RUGPULL: Final[str] = "/api/tokens/rugpull-check"
ENDPOINT_HEALTH: Final[str] = "/health"

DEFAULT_ENGINE_TIMEOUT: Final[float] = 10.0  # seconds
DEFAULT_ENGINE_RETRIES: Final[int] = 2
DEFAULT_ENGINE_RETRY_DELAY: Final[float] = 1.0  # seconds, doubled per attempt
HEALTH_CHECK_TIMEOUT: Final[float] = 3.0  # seconds

# Circuit breaker
CIRCUIT_FAILURE_THRESHOLD: Final[int] = 5
CIRCUIT_RESET_TIMEOUT_MS: Final[int] = 30_000


# =============================================================================
# Response Cache
# =============================================================================

# /api/opportunities
OPPORTUNITIES_CACHE_TTL: Final[int] = 5  # seconds
OPPORTUNITIES_CACHE_SWR: Final[int] = 10  # seconds
OPPORTUNITIES_VARY: Final[tuple[str, ...]] = ("Accept", "Authorization")

# /api/assets/safety
SAFETY_CACHE_TTL: Final[int] = 300  # seconds
SAFETY_CACHE_SWR: Final[int] = 600  # seconds
SAFETY_VARY: Final[tuple[str, ...]] = ("Accept",)

DEFAULT_CACHE_MAX_ENTRIES: Final[int] = 10_000

CACHE_STATUS_HEADER: Final[str] = "X-Cache-Status"


# =============================================================================
# Rate Limiting
# =============================================================================

DEFAULT_MAX_BUCKETS: Final[int] = 50_000
UNKNOWN_CLIENT_KEY: Final[str] = "unknown"

# Per-client limits on /api/* routes (requests per window)
API_RATE_WINDOW_MS: Final[int] = 60_000
API_RATE_LIMIT_OPPORTUNITIES: Final[int] = 120
API_RATE_LIMIT_ASSETS: Final[int] = 60
API_RATE_LIMIT_DEFAULT: Final[int] = 100
API_RATE_SCOPE: Final[str] = "/api"
# Guarded by the proxy's own rule instead
API_RATE_EXEMPT: Final[tuple[str, ...]] = ("/api/proxy",)

RATE_LIMIT_HEADER: Final[str] = "X-RateLimit-Limit"
RATE_REMAINING_HEADER: Final[str] = "X-RateLimit-Remaining"
RATE_RESET_HEADER: Final[str] = "X-RateLimit-Reset"


# =============================================================================
# Asset Safety
# =============================================================================

SAFETY_BATCH_SIZE: Final[int] = 20
SAFETY_PASS_THRESHOLD: Final[int] = 70
NEUTRAL_SAFETY_SCORE: Final[int] = 50
MAX_CHECK_ADDRESSES: Final[int] = 100
MAX_LISTED_ASSETS: Final[int] = 1000

# Weights for the safety reduction (sum to 1.0)
WEIGHT_LIQUIDITY: Final[float] = 0.25
WEIGHT_VERIFIED: Final[float] = 0.15
WEIGHT_DISTRIBUTION: Final[float] = 0.20
WEIGHT_VOLUME: Final[float] = 0.20
WEIGHT_RUGPULL: Final[float] = 0.20

RUGPULL_RISK_SCORES: Final[dict[str, int]] = {
    "low": 100,
    "medium": 50,
    "high": 0,
    "unknown": 0,
}


# =============================================================================
# Opportunity Scoring
# =============================================================================

# Weights for the composite opportunity score (sum to 1.0)
WEIGHT_PROFIT: Final[float] = 0.35
WEIGHT_GAS: Final[float] = 0.25
WEIGHT_SAFETY: Final[float] = 0.25
WEIGHT_FRESHNESS: Final[float] = 0.15

# Profit (USD) that earns a full profit score
PROFIT_SCORE_FULL_USD: Final[float] = 100.0
# Gas (USD) at which the gas score reaches zero
GAS_SCORE_ZERO_USD: Final[float] = 50.0
# Freshness points lost per minute of age
FRESHNESS_DECAY_PER_MINUTE: Final[float] = 10.0

DEFAULT_PAGE_LIMIT: Final[int] = 100
MAX_PAGE_LIMIT: Final[int] = 1000
DEFAULT_MAX_PERSISTED_OPPORTUNITIES: Final[int] = 1000

# Live feed (/api/opportunities/stream)
STREAM_INTERVAL_SECONDS: Final[float] = 5.0
STREAM_BATCH_LIMIT: Final[int] = 10


# =============================================================================
# Logging & Telemetry
# =============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S"

# Maximum log queue size
MAX_LOG_QUEUE_SIZE: Final[int] = 10_000
