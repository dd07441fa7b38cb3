"""
Pydantic records for opportunities, asset safety and query surfaces.

These models are the typed boundary: payloads from the engine, the
repositories and HTTP query strings are validated into them, and internal
logic only ever sees the typed form. Fields accept camelCase aliases on
input and are serialized back with the same aliases.
"""

from decimal import Decimal, InvalidOperation
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from arbedge.config.constants import DEFAULT_PAGE_LIMIT, MAX_CHECK_ADDRESSES, MAX_PAGE_LIMIT


SortBy = Literal["profit", "gas", "timestamp", "score"]
SortOrder = Literal["asc", "desc"]
RugpullRisk = Literal["low", "medium", "high", "unknown"]

# Applied after aggregation, never by the engine
ENGINE_LOCAL_FIELDS = frozenset({"limit", "offset", "sort_by", "order"})


# =============================================================================
# Opportunities
# =============================================================================


class Opportunity(BaseModel):
    """An observed arbitrage event."""

    id: str = Field(min_length=1)
    chain_id: int = Field(alias="chainId", gt=0)
    dex_in: str = Field(alias="dexIn")
    dex_out: str = Field(alias="dexOut")
    base_token: str = Field(alias="baseToken")
    quote_token: str = Field(alias="quoteToken")
    amount_in: str = Field(alias="amountIn")
    est_profit_usd: float = Field(alias="estProfitUsd")
    gas_usd: float = Field(alias="gasUsd")
    ts: int
    is_testnet: bool = Field(default=False, alias="isTestnet")
    updated_at: int | None = Field(default=None, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @field_validator("amount_in", mode="before")
    @classmethod
    def validate_amount_in(cls, v: object) -> str:
        """Keep arbitrary precision: the amount stays a decimal string."""
        text = str(v).strip()
        try:
            Decimal(text)
        except InvalidOperation as e:
            raise ValueError(f"amountIn is not a decimal: {v!r}") from e
        return text


class ScoredOpportunity(Opportunity):
    """Opportunity with request-scoped derived scores (never persisted)."""

    score: int = Field(ge=0, le=100)
    safety_score: int = Field(alias="safetyScore", ge=0, le=100)
    profit_score: int = Field(alias="profitScore", ge=0, le=100)
    gas_score: int = Field(alias="gasScore", ge=0, le=100)
    freshness_score: int = Field(alias="freshnessScore", ge=0, le=100)


class OpportunityFilters(BaseModel):
    """AND-combined optional filters; ``None`` means no constraint."""

    min_profit: float | None = None
    max_gas: float | None = None
    dex: str | None = None
    token: str | None = None


class OpportunityPage(BaseModel):
    """A page of scored opportunities plus the pre-pagination count."""

    items: list[ScoredOpportunity]
    total: int


class OpportunityQuery(BaseModel):
    """Query string of ``GET /api/opportunities``."""

    chain_id: int | None = Field(default=None, alias="chainId", gt=0)
    min_profit: float | None = Field(default=None, alias="minProfit")
    max_gas: float | None = Field(default=None, alias="maxGas")
    dex: str | None = None
    token: str | None = None
    limit: int = Field(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)
    offset: int = Field(default=0, ge=0)
    sort_by: SortBy = Field(default="profit", alias="sortBy")
    order: SortOrder = "desc"

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("chain_id", "min_profit", "max_gas", "dex", "token", mode="before")
    @classmethod
    def blank_is_absent(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def filters(self) -> OpportunityFilters:
        return OpportunityFilters(
            min_profit=self.min_profit,
            max_gas=self.max_gas,
            dex=self.dex,
            token=self.token,
        )

    def engine_params(self, cap: int | None = None) -> dict[str, str]:
        """
        Filter parameters forwarded to the engine (absent values dropped).

        Paging and ordering stay local: the merged set is paginated once
        after aggregation, so the engine only receives ``cap`` as its limit.
        """
        params = self.model_dump(by_alias=True, exclude_none=True, exclude=ENGINE_LOCAL_FIELDS)
        if cap is not None:
            params["limit"] = cap
        return {k: str(v) for k, v in params.items()}


# =============================================================================
# Asset Safety
# =============================================================================


class CheckResult(BaseModel):
    """Outcome of a scored sub-check (liquidity, verification, ...)."""

    passed: bool = False
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    error: str | None = None

    model_config = {"extra": "allow"}

    @classmethod
    def failed(cls, error: str | None = None) -> "CheckResult":
        """Pessimistic default for a missing or failed check."""
        return cls(passed=False, score=0.0, error=error)


class RugpullResult(BaseModel):
    """Categorical rugpull risk classification."""

    risk: RugpullRisk = "unknown"
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    error: str | None = None

    model_config = {"extra": "allow"}


class SafetyChecks(BaseModel):
    """Structured sub-check results for one address."""

    liquidity: CheckResult = Field(default_factory=CheckResult.failed)
    verified: CheckResult = Field(default_factory=CheckResult.failed)
    distribution: CheckResult = Field(default_factory=CheckResult.failed)
    volume: CheckResult = Field(default_factory=CheckResult.failed)
    blacklisted: bool = False
    rugpull: RugpullResult = Field(default_factory=lambda: RugpullResult(risk="high"))
    reason: str | None = None


class AssetSafety(BaseModel):
    """Per-address safety record."""

    address: str = Field(min_length=1)
    score: int = Field(ge=0, le=100)
    checks: SafetyChecks = Field(default_factory=SafetyChecks)
    updated_at: int = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}


class BlacklistEntry(BaseModel):
    address: str
    reason: str | None = None
    added_at: int = Field(alias="addedAt")

    model_config = {"populate_by_name": True}


class SafetyQuery(BaseModel):
    """Query string of ``GET /api/assets/safety``."""

    addresses: str | None = None
    chain_id: int | None = Field(default=None, alias="chainId", gt=0)
    force_refresh: bool = Field(default=False, alias="forceRefresh")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("chain_id", mode="before")
    @classmethod
    def blank_is_absent(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def address_list(self) -> list[str]:
        if not self.addresses:
            return []
        return [a.strip() for a in self.addresses.split(",") if a.strip()]


class SafetyCheckRequest(BaseModel):
    """Body of ``POST /api/assets/safety/check``."""

    addresses: list[str] = Field(min_length=1, max_length=MAX_CHECK_ADDRESSES)
    chain_id: int | None = Field(default=None, alias="chainId", gt=0)

    model_config = {"populate_by_name": True}


class BlacklistRequest(BaseModel):
    """Body of ``POST /api/assets/blacklist``."""

    addresses: list[str] = Field(min_length=1)
    reason: str | None = None
