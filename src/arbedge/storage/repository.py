"""
Persistence boundary for opportunities and asset safety records.

The edge only reads opportunities and upserts safety records; the protocols
below are all it relies on. The in-memory implementations back tests and
single-process deployments; a database-backed implementation only needs to
satisfy the same protocols.
"""

from collections.abc import Iterable
from typing import Protocol

from arbedge.config.constants import MAX_LISTED_ASSETS
from arbedge.core.models import AssetSafety, Opportunity


class OpportunityRepository(Protocol):
    async def list_opportunities(self, chain_id: int | None = None, limit: int | None = None) -> list[Opportunity]: ...


class AssetSafetyRepository(Protocol):
    async def get_many(self, addresses: Iterable[str]) -> dict[str, AssetSafety]: ...

    async def upsert_many(self, records: Iterable[AssetSafety]) -> None: ...

    async def mark_blacklisted(self, address: str, reason: str | None, updated_at: int) -> None: ...

    async def list_all(self, limit: int = MAX_LISTED_ASSETS) -> list[AssetSafety]: ...


class InMemoryOpportunityRepository:
    """Opportunities held in insertion order, newest ``ts`` first on read."""

    def __init__(self, opportunities: Iterable[Opportunity] = ()) -> None:
        self._records: dict[str, Opportunity] = {}
        for opportunity in opportunities:
            self._records[opportunity.id] = opportunity

    async def add(self, opportunity: Opportunity) -> None:
        self._records[opportunity.id] = opportunity

    async def list_opportunities(self, chain_id: int | None = None, limit: int | None = None) -> list[Opportunity]:
        records = [o for o in self._records.values() if chain_id is None or o.chain_id == chain_id]
        records.sort(key=lambda o: o.ts, reverse=True)
        return records if limit is None else records[:limit]


class InMemoryAssetSafetyRepository:
    """Safety records keyed by address."""

    def __init__(self, records: Iterable[AssetSafety] = ()) -> None:
        self._records: dict[str, AssetSafety] = {r.address: r for r in records}

    async def get_many(self, addresses: Iterable[str]) -> dict[str, AssetSafety]:
        return {a: self._records[a] for a in addresses if a in self._records}

    async def upsert_many(self, records: Iterable[AssetSafety]) -> None:
        for record in records:
            self._records[record.address] = record

    async def mark_blacklisted(self, address: str, reason: str | None, updated_at: int) -> None:
        """Force ``score = 0``; a record is created when the address is unknown."""
        existing = self._records.get(address)
        if existing is None:
            existing = AssetSafety(address=address, score=0, updated_at=updated_at)
        checks = existing.checks.model_copy(update={"blacklisted": True, "reason": reason})
        self._records[address] = existing.model_copy(
            update={"score": 0, "checks": checks, "updated_at": updated_at}
        )

    async def list_all(self, limit: int = MAX_LISTED_ASSETS) -> list[AssetSafety]:
        records = sorted(self._records.values(), key=lambda r: r.updated_at, reverse=True)
        return records[:limit]
