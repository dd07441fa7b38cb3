"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import orjson
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from arbedge.config.constants import (
    API_RATE_LIMIT_ASSETS,
    API_RATE_LIMIT_DEFAULT,
    API_RATE_LIMIT_OPPORTUNITIES,
    API_RATE_WINDOW_MS,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_ENGINE_RETRIES,
    DEFAULT_ENGINE_RETRY_DELAY,
    DEFAULT_ENGINE_TIMEOUT,
    DEFAULT_ENGINE_URL,
    DEFAULT_MAX_BUCKETS,
    DEFAULT_MAX_PERSISTED_OPPORTUNITIES,
    OPPORTUNITIES_CACHE_SWR,
    OPPORTUNITIES_CACHE_TTL,
    SAFETY_BATCH_SIZE,
    SAFETY_CACHE_SWR,
    SAFETY_CACHE_TTL,
    SAFETY_PASS_THRESHOLD,
    STREAM_INTERVAL_SECONDS,
)


def parse_json_array(raw: str | None) -> list[Any]:
    """
    Parse a JSON array from configuration text.

    Anything that is missing, malformed or not an array yields ``[]`` so a
    broken value disables the feature instead of crashing startup.
    """
    if not raw:
        return []
    try:
        parsed = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Engine
    # =========================================================================

    engine_url: str = Field(
        default=DEFAULT_ENGINE_URL,
        description="Base URL of the opportunity/safety computation engine",
    )

    engine_timeout_seconds: float = Field(
        default=DEFAULT_ENGINE_TIMEOUT,
        gt=0.0,
        le=60.0,
        description="Total timeout for a single engine request",
    )

    engine_retries: int = Field(
        default=DEFAULT_ENGINE_RETRIES,
        ge=0,
        le=5,
        description="Retries after the first failed engine request",
    )

    engine_retry_delay_seconds: float = Field(
        default=DEFAULT_ENGINE_RETRY_DELAY,
        ge=0.0,
        le=10.0,
        description="Base backoff delay, doubled on every retry",
    )

    # =========================================================================
    # Response Cache
    # =========================================================================

    cache_ttl_opportunities: int = Field(default=OPPORTUNITIES_CACHE_TTL, ge=0)
    cache_swr_opportunities: int = Field(default=OPPORTUNITIES_CACHE_SWR, ge=0)
    cache_ttl_assets: int = Field(default=SAFETY_CACHE_TTL, ge=0)
    cache_swr_assets: int = Field(default=SAFETY_CACHE_SWR, ge=0)

    cache_max_entries: int = Field(
        default=DEFAULT_CACHE_MAX_ENTRIES,
        ge=1,
        description="Maximum cached responses before LRU eviction",
    )

    # =========================================================================
    # Upstream Proxy (JSON arrays)
    # =========================================================================

    proxy_allow_paths_json: str = Field(
        default="[]",
        description='Allowed proxy path prefixes, e.g. ["/opportunities"]',
    )
    proxy_upstreams_json: str = Field(
        default="[]",
        description="Upstream base URLs; the first non-empty string is used",
    )
    proxy_rate_limits_json: str = Field(
        default="[]",
        description='Rate rules, e.g. [{"windowMs": 1000, "tokens": 5}]',
    )
    proxy_extra_headers_json: str = Field(
        default="[]",
        description='Extra upstream headers, e.g. [{"key": "X-Api-Key", "value": "..."}]',
    )

    rate_limit_max_buckets: int = Field(
        default=DEFAULT_MAX_BUCKETS,
        ge=1,
        description="Maximum tracked rate-limit buckets before LRU eviction",
    )

    # =========================================================================
    # API Rate Limits (requests per client per window, 0 disables)
    # =========================================================================

    api_rate_window_ms: int = Field(default=API_RATE_WINDOW_MS, ge=1)
    api_rate_limit_opportunities: int = Field(default=API_RATE_LIMIT_OPPORTUNITIES, ge=0)
    api_rate_limit_assets: int = Field(default=API_RATE_LIMIT_ASSETS, ge=0)
    api_rate_limit_default: int = Field(
        default=API_RATE_LIMIT_DEFAULT,
        ge=0,
        description="Limit for /api routes without a dedicated rule",
    )

    # =========================================================================
    # Safety & Opportunities
    # =========================================================================

    safety_batch_size: int = Field(default=SAFETY_BATCH_SIZE, ge=1, le=100)
    safety_pass_threshold: int = Field(default=SAFETY_PASS_THRESHOLD, ge=0, le=100)

    max_persisted_opportunities: int = Field(
        default=DEFAULT_MAX_PERSISTED_OPPORTUNITIES,
        ge=1,
        description="Upper bound on persisted opportunities read per request",
    )

    stream_interval_seconds: float = Field(
        default=STREAM_INTERVAL_SECONDS,
        ge=0.0,
        description="Pause between live feed events",
    )
    stream_max_events: int = Field(
        default=0,
        ge=0,
        description="Events per live feed connection before it closes; 0 streams until disconnect",
    )

    # =========================================================================
    # Operation Mode
    # =========================================================================

    environment: str = Field(default="development")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional file receiving DEBUG-level logs",
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8787, ge=1, le=65535)

    use_uvloop: bool = Field(
        default=True,
        description="Use uvloop for improved async performance",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("engine_url", mode="after")
    @classmethod
    def validate_engine_url(cls, v: str) -> str:
        """Strip trailing slashes so endpoint paths join cleanly."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("engine_url cannot be empty")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def proxy_allow_paths(self) -> list[str]:
        return [p for p in parse_json_array(self.proxy_allow_paths_json) if isinstance(p, str) and p]

    @property
    def proxy_upstreams(self) -> list[str]:
        return [u for u in parse_json_array(self.proxy_upstreams_json) if isinstance(u, str) and u]

    @property
    def proxy_rate_limits(self) -> list[Any]:
        return parse_json_array(self.proxy_rate_limits_json)

    @property
    def proxy_extra_headers(self) -> list[Any]:
        return parse_json_array(self.proxy_extra_headers_json)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()
