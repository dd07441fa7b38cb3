"""
Pydantic models for engine API responses.

These models provide type-safe parsing of engine payloads. Per-record
parsing is lenient at the collection level: a malformed record is dropped
(and logged by the caller) rather than failing the whole response.
"""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from arbedge.core.models import CheckResult, Opportunity, RugpullResult


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class OpportunitiesResponse(BaseModel):
    """Envelope of ``GET /api/opportunities`` on the engine."""

    opportunities: list[Any] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    def parsed(self) -> list[Opportunity]:
        """Validate each record, dropping the malformed ones."""
        records: list[Opportunity] = []
        for raw in self.opportunities:
            try:
                records.append(Opportunity.model_validate(raw))
            except PydanticValidationError as e:
                record_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning(f"Dropping malformed engine opportunity {record_id!r}: {e.error_count()} errors")
        return records


def parse_address_map(data: Any, model: type[M]) -> dict[str, M]:
    """
    Parse a ``{address: result}`` engine payload.

    Entries that fail validation are omitted so the caller substitutes its
    own pessimistic default for them.
    """
    if not isinstance(data, dict):
        raise TypeError(f"Expected an address map, got {type(data).__name__}")

    results: dict[str, M] = {}
    for address, raw in data.items():
        try:
            results[str(address)] = model.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed {model.__name__} for {address}: {e.error_count()} errors")
    return results


def parse_check_map(data: Any) -> dict[str, CheckResult]:
    return parse_address_map(data, CheckResult)


def parse_rugpull_map(data: Any) -> dict[str, RugpullResult]:
    return parse_address_map(data, RugpullResult)
