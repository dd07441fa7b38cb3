"""Maintained list of blacklisted token addresses."""

from arbedge.core.models import BlacklistEntry
from arbedge.utils.time import Clock, SystemClock


class Blacklist:
    """
    Append-only blacklist with case-insensitive membership.

    Adding an address again appends another entry (keeping the history of
    reasons) but membership is unaffected.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._entries: list[BlacklistEntry] = []
        self._addresses: set[str] = set()

    def add(self, addresses: list[str], reason: str | None = None) -> list[BlacklistEntry]:
        """Append entries for ``addresses`` and return them."""
        now = self._clock.now_ms()
        added = [BlacklistEntry(address=a, reason=reason, added_at=now) for a in addresses]
        self._entries.extend(added)
        self._addresses.update(a.lower() for a in addresses)
        return added

    def contains(self, address: str) -> bool:
        return address.lower() in self._addresses

    def check(self, addresses: list[str]) -> dict[str, bool]:
        return {a: self.contains(a) for a in addresses}

    @property
    def entries(self) -> list[BlacklistEntry]:
        return list(self._entries)

    @property
    def updated_at(self) -> int | None:
        return self._entries[-1].added_at if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)
