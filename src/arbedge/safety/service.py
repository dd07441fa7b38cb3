"""
Asset safety service: scoring, persistence and blacklist maintenance.

Stored records act as the long-lived safety cache; HTTP-level staleness is
handled by the response cache in front of the safety routes.
"""

import logging
from dataclasses import dataclass

from arbedge.config.constants import MAX_LISTED_ASSETS, SAFETY_PASS_THRESHOLD
from arbedge.core.models import AssetSafety, BlacklistEntry
from arbedge.safety.blacklist import Blacklist
from arbedge.safety.scorer import SafetyScorer
from arbedge.storage.repository import AssetSafetyRepository
from arbedge.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


@dataclass
class CheckSummary:
    """Result of an explicit safety check run."""

    assets: list[AssetSafety]
    evaluated: int
    passed: int
    failed: int


class AssetSafetyService:
    def __init__(
        self,
        scorer: SafetyScorer,
        repository: AssetSafetyRepository,
        blacklist: Blacklist,
        pass_threshold: int = SAFETY_PASS_THRESHOLD,
        clock: Clock | None = None,
    ) -> None:
        self._scorer = scorer
        self._repository = repository
        self._blacklist = blacklist
        self._pass_threshold = pass_threshold
        self._clock = clock or SystemClock()

    async def evaluate(
        self,
        addresses: list[str],
        chain_id: int | None = None,
        force_refresh: bool = False,
    ) -> list[AssetSafety]:
        """
        Return safety records for ``addresses``.

        Stored records are reused unless ``force_refresh``; the remaining
        addresses are scored and persisted.
        """
        unique = list(dict.fromkeys(addresses))
        known = {} if force_refresh else await self._repository.get_many(unique)
        missing = [a for a in unique if a not in known]

        scored = await self._scorer.score(missing, chain_id) if missing else {}
        if scored:
            await self._repository.upsert_many(scored.values())

        return [known.get(a) or scored[a] for a in unique]

    async def check(self, addresses: list[str], chain_id: int | None = None) -> CheckSummary:
        """Score every address unconditionally and persist the results."""
        scored = await self._scorer.score(addresses, chain_id)
        records = list(scored.values())
        await self._repository.upsert_many(records)

        passed = sum(1 for r in records if r.score >= self._pass_threshold)
        logger.info(f"Safety check: {len(records)} assets, {passed} passed")
        return CheckSummary(
            assets=records,
            evaluated=len(addresses),
            passed=passed,
            failed=len(records) - passed,
        )

    async def list_all(self, limit: int = MAX_LISTED_ASSETS) -> list[AssetSafety]:
        return await self._repository.list_all(limit)

    async def blacklist_add(self, addresses: list[str], reason: str | None = None) -> list[BlacklistEntry]:
        """Blacklist ``addresses`` and force their stored scores to 0."""
        added = self._blacklist.add(addresses, reason)
        now = self._clock.now_ms()
        for address in addresses:
            await self._repository.mark_blacklisted(address, reason, now)
        logger.warning(f"Blacklisted {len(addresses)} assets (reason: {reason})")
        return added

    async def lookup_scores(self, addresses: list[str]) -> dict[str, int]:
        """Stored scores for the known addresses among ``addresses``."""
        records = await self._repository.get_many(addresses)
        return {address: record.score for address, record in records.items()}

    @property
    def blacklist(self) -> Blacklist:
        return self._blacklist
