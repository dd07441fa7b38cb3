"""Persistence boundary: repository protocols and in-memory implementations."""

from arbedge.storage.repository import (
    AssetSafetyRepository,
    InMemoryAssetSafetyRepository,
    InMemoryOpportunityRepository,
    OpportunityRepository,
)


__all__ = [
    "AssetSafetyRepository",
    "InMemoryAssetSafetyRepository",
    "InMemoryOpportunityRepository",
    "OpportunityRepository",
]
