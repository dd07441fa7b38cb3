"""
Opportunity aggregation pipeline.

Merges persisted and live opportunities, filters them, scores them against
asset safety, sorts and paginates. Every stage is a plain function so it can
be exercised on its own; :class:`OpportunityAggregator` chains them and owns
the one asynchronous step, the safety lookup.
"""

import logging
from collections.abc import Awaitable, Callable

from arbedge.config.constants import (
    FRESHNESS_DECAY_PER_MINUTE,
    GAS_SCORE_ZERO_USD,
    NEUTRAL_SAFETY_SCORE,
    PROFIT_SCORE_FULL_USD,
    WEIGHT_FRESHNESS,
    WEIGHT_GAS,
    WEIGHT_PROFIT,
    WEIGHT_SAFETY,
)
from arbedge.core.models import (
    Opportunity,
    OpportunityFilters,
    OpportunityPage,
    ScoredOpportunity,
    SortBy,
    SortOrder,
)
from arbedge.utils.math import clamp, round_half_up
from arbedge.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


# Type alias for the safety source: addresses -> known scores
SafetyLookup = Callable[[list[str]], Awaitable[dict[str, int]]]


def merge_opportunities(
    persisted: list[Opportunity],
    live: list[Opportunity],
    now_ms: int,
) -> list[Opportunity]:
    """
    Merge two sources keyed by ``id``, live winning on overlap.

    Persisted records seed the map. A live record with a new id is inserted
    as-is; one with a known id is overlaid onto the persisted record (only
    the fields the live record carried) and stamped ``updated_at = now``.
    Order is persisted order followed by new live ids.
    """
    merged: dict[str, Opportunity] = {}
    for opportunity in persisted:
        merged[opportunity.id] = opportunity

    for opportunity in live:
        existing = merged.get(opportunity.id)
        if existing is None:
            merged[opportunity.id] = opportunity
            continue
        overlay = opportunity.model_dump(exclude_unset=True)
        overlay["updated_at"] = now_ms
        merged[opportunity.id] = existing.model_copy(update=overlay)

    return list(merged.values())


def apply_filters(opportunities: list[Opportunity], filters: OpportunityFilters) -> list[Opportunity]:
    """Keep opportunities matching every present filter."""

    def matches(opp: Opportunity) -> bool:
        if filters.min_profit is not None and opp.est_profit_usd < filters.min_profit:
            return False
        if filters.max_gas is not None and opp.gas_usd > filters.max_gas:
            return False
        if filters.dex and filters.dex not in opp.dex_in and filters.dex not in opp.dex_out:
            return False
        if filters.token and filters.token not in opp.base_token and filters.token not in opp.quote_token:
            return False
        return True

    return [opp for opp in opportunities if matches(opp)]


def score_opportunity(
    opportunity: Opportunity,
    base_safety: float,
    quote_safety: float,
    now_ms: int,
) -> ScoredOpportunity:
    """
    Attach composite and component scores.

    Components are clamped to [0, 100] so the composite stays in range for
    any finite input (negative profit, future timestamps, negative gas).
    """
    profit_score = clamp(opportunity.est_profit_usd / PROFIT_SCORE_FULL_USD * 100)
    gas_score = clamp(100 - opportunity.gas_usd / GAS_SCORE_ZERO_USD * 100)
    safety_score = clamp((base_safety + quote_safety) / 2)
    age_minutes = (now_ms - opportunity.ts) / 60_000
    freshness_score = clamp(100 - age_minutes * FRESHNESS_DECAY_PER_MINUTE)

    total = (
        profit_score * WEIGHT_PROFIT
        + gas_score * WEIGHT_GAS
        + safety_score * WEIGHT_SAFETY
        + freshness_score * WEIGHT_FRESHNESS
    )

    return ScoredOpportunity(
        **opportunity.model_dump(),
        score=round_half_up(total),
        safety_score=round_half_up(safety_score),
        profit_score=round_half_up(profit_score),
        gas_score=round_half_up(gas_score),
        freshness_score=round_half_up(freshness_score),
    )


_SORT_KEYS: dict[str, Callable[[ScoredOpportunity], float]] = {
    "profit": lambda o: o.est_profit_usd,
    "gas": lambda o: o.gas_usd,
    "timestamp": lambda o: o.ts,
    "score": lambda o: o.score,
}


def sort_opportunities(
    opportunities: list[ScoredOpportunity],
    sort_by: SortBy,
    order: SortOrder,
) -> list[ScoredOpportunity]:
    """Stable sort; equal keys keep their input order in both directions."""
    return sorted(opportunities, key=_SORT_KEYS[sort_by], reverse=order == "desc")


def paginate(items: list[ScoredOpportunity], limit: int, offset: int) -> OpportunityPage:
    """Slice ``[offset, offset + limit)``; ``total`` is the unsliced count."""
    return OpportunityPage(items=items[offset : offset + limit], total=len(items))


class OpportunityAggregator:
    """
    Runs merge -> filter -> score -> sort -> paginate.

    The safety lookup is awaited before scoring; addresses it does not know
    score as neutral (50).
    """

    def __init__(self, safety_lookup: SafetyLookup, clock: Clock | None = None) -> None:
        self._safety_lookup = safety_lookup
        self._clock = clock or SystemClock()

    async def aggregate(
        self,
        persisted: list[Opportunity],
        live: list[Opportunity],
        filters: OpportunityFilters,
        sort_by: SortBy = "profit",
        order: SortOrder = "desc",
        limit: int = 100,
        offset: int = 0,
    ) -> OpportunityPage:
        """
        Build one page of scored opportunities.

        Args:
            persisted: Records from the database of record.
            live: Records from the engine (override persisted on id).
            filters: Optional filter dimensions.
            sort_by: profit | gas | timestamp | score.
            order: asc | desc.
            limit: Page size.
            offset: Page start.

        Returns:
            Page with the sliced items and the filtered total.
        """
        now = self._clock.now_ms()
        merged = merge_opportunities(persisted, live, now)
        filtered = apply_filters(merged, filters)

        tokens = list(dict.fromkeys(t for o in filtered for t in (o.base_token, o.quote_token)))
        known = await self._safety_lookup(tokens) if tokens else {}

        scored = [
            score_opportunity(
                opp,
                known.get(opp.base_token, NEUTRAL_SAFETY_SCORE),
                known.get(opp.quote_token, NEUTRAL_SAFETY_SCORE),
                now,
            )
            for opp in filtered
        ]

        logger.debug(
            f"Aggregated {len(persisted)} persisted + {len(live)} live -> "
            f"{len(merged)} merged, {len(filtered)} after filters"
        )
        return paginate(sort_opportunities(scored, sort_by, order), limit, offset)
