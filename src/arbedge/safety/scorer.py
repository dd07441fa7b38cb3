"""
Parallel multi-check asset safety scorer.

For every batch of addresses six checks run concurrently (liquidity,
contract verification, holder distribution, trading volume, blacklist,
rugpull risk) and are reduced to one 0-100 score per address. Provider
failures are recovered locally into pessimistic defaults: a failing check
lowers the score, it never raises and never counts as neutral.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from arbedge.config.constants import (
    RUGPULL_RISK_SCORES,
    SAFETY_BATCH_SIZE,
    WEIGHT_DISTRIBUTION,
    WEIGHT_LIQUIDITY,
    WEIGHT_RUGPULL,
    WEIGHT_VERIFIED,
    WEIGHT_VOLUME,
)
from arbedge.core.models import AssetSafety, CheckResult, RugpullResult, SafetyChecks
from arbedge.safety.blacklist import Blacklist
from arbedge.telemetry.metrics import MetricsCollector
from arbedge.utils.math import round_half_up
from arbedge.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)

R = TypeVar("R")


class SafetyCheckProvider(Protocol):
    """External source of per-address check results (the engine)."""

    async def check_liquidity(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]: ...

    async def check_verification(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]: ...

    async def check_holders(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]: ...

    async def check_volume(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]: ...

    async def check_rugpull(self, addresses: list[str], chain_id: int | None = None) -> dict[str, RugpullResult]: ...


def calculate_safety_score(checks: SafetyChecks) -> int:
    """
    Reduce sub-checks to a single score.

    Blacklisted addresses score 0 regardless of every other check.
    """
    if checks.blacklisted:
        return 0

    rugpull_score = RUGPULL_RISK_SCORES.get(checks.rugpull.risk, 0)
    total = (
        checks.liquidity.score * WEIGHT_LIQUIDITY
        + checks.verified.score * WEIGHT_VERIFIED
        + checks.distribution.score * WEIGHT_DISTRIBUTION
        + checks.volume.score * WEIGHT_VOLUME
        + rugpull_score * WEIGHT_RUGPULL
    )
    return max(0, min(100, round_half_up(total)))


class SafetyScorer:
    """
    Fans out safety checks per batch and reduces them per address.

    Batches run concurrently with each other; within a batch the six checks
    run concurrently and are joined before scoring.
    """

    def __init__(
        self,
        provider: SafetyCheckProvider,
        blacklist: Blacklist,
        batch_size: int = SAFETY_BATCH_SIZE,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._provider = provider
        self._blacklist = blacklist
        self._batch_size = batch_size
        self._clock = clock or SystemClock()
        self._metrics = metrics

    async def score(self, addresses: list[str], chain_id: int | None = None) -> dict[str, AssetSafety]:
        """
        Score every address.

        Args:
            addresses: Token addresses; duplicates are scored once.
            chain_id: Optional chain passed to the providers.

        Returns:
            Mapping of address to its safety record, in input order.
        """
        unique = list(dict.fromkeys(addresses))
        if not unique:
            return {}

        batches = [unique[i : i + self._batch_size] for i in range(0, len(unique), self._batch_size)]
        results = await asyncio.gather(*(self._score_batch(batch, chain_id) for batch in batches))

        scored: dict[str, AssetSafety] = {}
        for batch_result in results:
            for record in batch_result:
                scored[record.address] = record
        return scored

    async def _score_batch(self, batch: list[str], chain_id: int | None) -> list[AssetSafety]:
        liquidity, verified, distribution, volume, rugpull = await asyncio.gather(
            self._guarded("liquidity", self._provider.check_liquidity, batch, chain_id, _failed_check),
            self._guarded("verification", self._provider.check_verification, batch, chain_id, _failed_check),
            self._guarded("distribution", self._provider.check_holders, batch, chain_id, _failed_check),
            self._guarded("volume", self._provider.check_volume, batch, chain_id, _failed_check),
            self._guarded("rugpull", self._provider.check_rugpull, batch, chain_id, _failed_rugpull),
        )
        blacklisted = self._blacklist.check(batch)

        now = self._clock.now_ms()
        records = []
        for address in batch:
            checks = SafetyChecks(
                liquidity=liquidity.get(address) or CheckResult.failed(),
                verified=verified.get(address) or CheckResult.failed(),
                distribution=distribution.get(address) or CheckResult.failed(),
                volume=volume.get(address) or CheckResult.failed(),
                blacklisted=blacklisted[address],
                rugpull=rugpull.get(address) or RugpullResult(risk="high"),
            )
            records.append(
                AssetSafety(
                    address=address,
                    score=calculate_safety_score(checks),
                    checks=checks,
                    updated_at=now,
                )
            )
        return records

    async def _guarded(
        self,
        name: str,
        check: Callable[[list[str], int | None], Awaitable[dict[str, R]]],
        batch: list[str],
        chain_id: int | None,
        on_failure: Callable[[str], R],
    ) -> dict[str, R]:
        """Run one check, replacing a provider failure with pessimistic defaults."""
        try:
            return await check(batch, chain_id)
        except Exception as e:
            logger.warning(f"Safety check {name} failed for {len(batch)} addresses: {e}")
            if self._metrics:
                self._metrics.increment_counter(f"safety_check_failed_{name}")
            default = on_failure(f"Failed to check {name}")
            return {address: default for address in batch}


def _failed_check(error: str) -> CheckResult:
    return CheckResult.failed(error)


def _failed_rugpull(error: str) -> RugpullResult:
    return RugpullResult(risk="unknown", score=0.0, error=error)
