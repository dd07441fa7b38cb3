"""Opportunity aggregation: merge, filter, score, sort and paginate."""

from arbedge.strategy.aggregator import (
    OpportunityAggregator,
    apply_filters,
    merge_opportunities,
    paginate,
    score_opportunity,
    sort_opportunities,
)


__all__ = [
    "OpportunityAggregator",
    "apply_filters",
    "merge_opportunities",
    "paginate",
    "score_opportunity",
    "sort_opportunities",
]
