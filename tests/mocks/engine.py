"""
In-process stand-ins for the engine.

Provide the same async surface as the real engine client without any
network calls, with configurable results and failures per check.
"""

from typing import Any

from arbedge.core.errors import UpstreamError
from arbedge.core.models import CheckResult, Opportunity, RugpullResult
from arbedge.engine.client import CircuitBreaker


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now_ms: int = 0) -> None:
        self._now_ms = now_ms

    def now_ms(self) -> int:
        return self._now_ms

    def advance(self, ms: int) -> None:
        self._now_ms += ms

    def set(self, now_ms: int) -> None:
        self._now_ms = now_ms


class FakeCheckProvider:
    """
    Safety check provider with scripted answers.

    Args:
        default: Result per check name applied to every address.
        overrides: ``{address: {check: result}}`` taking precedence.
        failing: Check names that raise instead of answering.
    """

    CHECKS = ("liquidity", "verification", "holders", "volume", "rugpull")

    def __init__(
        self,
        default: dict[str, Any] | None = None,
        overrides: dict[str, dict[str, Any]] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.default = default or {}
        self.overrides = overrides or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, list[str], int | None]] = []

    def _answer(self, name: str, addresses: list[str], chain_id: int | None) -> dict[str, Any]:
        self.calls.append((name, list(addresses), chain_id))
        if name in self.failing:
            raise UpstreamError(f"{name} provider down")
        results = {}
        for address in addresses:
            result = self.overrides.get(address, {}).get(name, self.default.get(name))
            if result is not None:
                results[address] = result
        return results

    async def check_liquidity(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return self._answer("liquidity", addresses, chain_id)

    async def check_verification(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return self._answer("verification", addresses, chain_id)

    async def check_holders(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return self._answer("holders", addresses, chain_id)

    async def check_volume(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return self._answer("volume", addresses, chain_id)

    async def check_rugpull(self, addresses: list[str], chain_id: int | None = None) -> dict[str, RugpullResult]:
        return self._answer("rugpull", addresses, chain_id)

    def batches(self, name: str = "liquidity") -> list[list[str]]:
        return [addresses for check, addresses, _ in self.calls if check == name]


class FakeEngine(FakeCheckProvider):
    """Engine double: live opportunities plus the check provider surface."""

    def __init__(
        self,
        opportunities: list[Opportunity] | None = None,
        healthy: bool = True,
        clock: ManualClock | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.opportunities = opportunities or []
        self.healthy = healthy
        self.fail_opportunities = False
        self.opportunity_requests: list[dict[str, str] | None] = []
        self.closed = False
        self._breaker = CircuitBreaker(clock=clock)

    async def fetch_opportunities(self, params: dict[str, str] | None = None) -> list[Opportunity]:
        self.opportunity_requests.append(params)
        if self.fail_opportunities:
            raise UpstreamError("Engine request failed: connection refused")
        return list(self.opportunities)

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker
