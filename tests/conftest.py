"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

import pytest

from arbedge.config.settings import Settings
from arbedge.core.models import CheckResult, Opportunity, RugpullResult, SafetyChecks
from arbedge.core.types import RouteCacheConfig
from tests.mocks import FakeCheckProvider, FakeEngine, ManualClock
from tests.mocks.data import NOW_MS, make_opportunity, passing_checks


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock starting at a fixed instant."""
    return ManualClock(NOW_MS)


# =============================================================================
# Opportunity Fixtures
# =============================================================================


@pytest.fixture
def opportunity() -> Opportunity:
    return make_opportunity()


@pytest.fixture
def opportunities() -> list[Opportunity]:
    """Three opportunities with distinct profit, gas, age and venues."""
    return [
        make_opportunity("a", estProfitUsd=10.0, gasUsd=5.0, ts=NOW_MS - 60_000),
        make_opportunity("b", estProfitUsd=80.0, gasUsd=20.0, ts=NOW_MS),
        make_opportunity("c", estProfitUsd=40.0, gasUsd=1.0, ts=NOW_MS - 120_000, dexIn="curve"),
    ]


# =============================================================================
# Safety Fixtures
# =============================================================================


@pytest.fixture
def check_provider() -> FakeCheckProvider:
    """Provider under which every address scores 100."""
    return FakeCheckProvider(default=passing_checks())


@pytest.fixture
def safe_checks() -> SafetyChecks:
    return SafetyChecks(
        liquidity=CheckResult(passed=True, score=100),
        verified=CheckResult(passed=True, score=100),
        distribution=CheckResult(passed=True, score=100),
        volume=CheckResult(passed=True, score=100),
        rugpull=RugpullResult(risk="low", score=100),
    )


# =============================================================================
# Edge Fixtures
# =============================================================================


@pytest.fixture
def route() -> RouteCacheConfig:
    """5s fresh, 10s stale route varying on Accept."""
    return RouteCacheConfig(ttl_seconds=5, stale_while_revalidate_seconds=10, vary_headers=("Accept",))


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        engine_url="http://engine.test",
        proxy_allow_paths_json='["/opportunities"]',
        proxy_upstreams_json='["http://upstream.test"]',
        proxy_rate_limits_json='[{"windowMs": 60000, "tokens": 2}]',
    )


@pytest.fixture
def engine(clock: ManualClock) -> FakeEngine:
    return FakeEngine(clock=clock, default=passing_checks())
