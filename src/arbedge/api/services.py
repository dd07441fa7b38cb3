"""
Process-scoped service container.

Every piece of mutable edge state (response cache, rate buckets, blacklist)
is constructed here once per process and injected into the components that
use it; nothing lives in module-level globals.
"""

import logging
from dataclasses import dataclass

from arbedge.config.constants import OPPORTUNITIES_VARY, SAFETY_VARY
from arbedge.config.settings import Settings
from arbedge.core.types import RouteCacheConfig
from arbedge.edge.cache import CacheGateway, CacheStore
from arbedge.edge.rate_limiter import BucketStore, PathRateLimits, TokenBucketLimiter
from arbedge.edge.refresh import RefreshQueue
from arbedge.engine.client import EngineClient
from arbedge.proxy.upstream import ProxyPolicy, UpstreamProxy
from arbedge.safety.blacklist import Blacklist
from arbedge.safety.scorer import SafetyCheckProvider, SafetyScorer
from arbedge.safety.service import AssetSafetyService
from arbedge.storage.repository import (
    AssetSafetyRepository,
    InMemoryAssetSafetyRepository,
    InMemoryOpportunityRepository,
    OpportunityRepository,
)
from arbedge.strategy.aggregator import OpportunityAggregator
from arbedge.telemetry.metrics import MetricsCollector
from arbedge.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)

OPPORTUNITIES_PATH = "/api/opportunities"
SAFETY_PATH = "/api/assets/safety"


@dataclass
class Services:
    """Everything a request handler needs, wired once per process."""

    settings: Settings
    clock: Clock
    metrics: MetricsCollector
    engine: EngineClient
    opportunities: OpportunityRepository
    safety: AssetSafetyService
    aggregator: OpportunityAggregator
    cache: CacheGateway
    limiter: TokenBucketLimiter
    api_limiter: TokenBucketLimiter
    api_rate_limits: PathRateLimits
    proxy: UpstreamProxy
    opportunities_cache: RouteCacheConfig
    safety_cache: RouteCacheConfig

    async def close(self) -> None:
        """Release network sessions and stop background refreshes."""
        await self.cache.refresher.cancel_all()
        await self.engine.close()
        await self.proxy.close()


def build_services(
    settings: Settings,
    clock: Clock | None = None,
    engine: EngineClient | None = None,
    check_provider: SafetyCheckProvider | None = None,
    opportunity_repository: OpportunityRepository | None = None,
    safety_repository: AssetSafetyRepository | None = None,
    proxy_policy: ProxyPolicy | None = None,
) -> Services:
    """
    Construct the service graph from settings.

    Args:
        settings: Application settings.
        clock: Time source shared by every time-driven component.
        engine: Engine client (built from settings when omitted).
        check_provider: Safety check source; defaults to the engine client.
        opportunity_repository: Persisted opportunities source.
        safety_repository: Persisted safety records.
        proxy_policy: Proxy policy (built from settings when omitted).
    """
    clock = clock or SystemClock()
    metrics = MetricsCollector()

    engine = engine or EngineClient(
        base_url=settings.engine_url,
        timeout=settings.engine_timeout_seconds,
        retries=settings.engine_retries,
        retry_delay=settings.engine_retry_delay_seconds,
    )
    opportunity_repository = opportunity_repository or InMemoryOpportunityRepository()
    safety_repository = safety_repository or InMemoryAssetSafetyRepository()

    blacklist = Blacklist(clock=clock)
    scorer = SafetyScorer(
        provider=check_provider or engine,
        blacklist=blacklist,
        batch_size=settings.safety_batch_size,
        clock=clock,
        metrics=metrics,
    )
    safety = AssetSafetyService(
        scorer=scorer,
        repository=safety_repository,
        blacklist=blacklist,
        pass_threshold=settings.safety_pass_threshold,
        clock=clock,
    )

    cache = CacheGateway(
        store=CacheStore(max_entries=settings.cache_max_entries),
        clock=clock,
        refresher=RefreshQueue(metrics=metrics),
        metrics=metrics,
    )
    limiter = TokenBucketLimiter(
        store=BucketStore(max_buckets=settings.rate_limit_max_buckets),
        clock=clock,
    )
    api_limiter = TokenBucketLimiter(
        store=BucketStore(max_buckets=settings.rate_limit_max_buckets),
        clock=clock,
    )
    policy = proxy_policy or ProxyPolicy.from_settings(settings)
    if not policy.configured:
        logger.warning("Upstream proxy has no allowed paths or upstreams; all proxy requests will be denied")

    return Services(
        settings=settings,
        clock=clock,
        metrics=metrics,
        engine=engine,
        opportunities=opportunity_repository,
        safety=safety,
        aggregator=OpportunityAggregator(safety_lookup=safety.lookup_scores, clock=clock),
        cache=cache,
        limiter=limiter,
        api_limiter=api_limiter,
        api_rate_limits=PathRateLimits.from_settings(settings),
        proxy=UpstreamProxy(
            policy=policy,
            limiter=limiter,
            timeout=settings.engine_timeout_seconds,
            metrics=metrics,
        ),
        opportunities_cache=RouteCacheConfig(
            ttl_seconds=settings.cache_ttl_opportunities,
            stale_while_revalidate_seconds=settings.cache_swr_opportunities,
            vary_headers=OPPORTUNITIES_VARY,
        ),
        safety_cache=RouteCacheConfig(
            ttl_seconds=settings.cache_ttl_assets,
            stale_while_revalidate_seconds=settings.cache_swr_assets,
            vary_headers=SAFETY_VARY,
        ),
    )
