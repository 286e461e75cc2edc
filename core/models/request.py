# ============================================================================
# JOB REQUEST MODEL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core model - Bulk acquisition request
# PURPOSE: Normalize and validate the input of job creation
# CREATED: 18 OCT 2026
# EXPORTS: JobRequest, MAX_ITEM_LENGTH
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Request

Items are normalized on the way in: whitespace stripped, upper-cased,
de-duplicated in first-seen order. Symbols that are empty or longer than
MAX_ITEM_LENGTH are dropped with a warning.
"""

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from core.models.artifact import normalize_item
from core.models.period import Period

logger = logging.getLogger(__name__)

MAX_ITEM_LENGTH = 10


class JobRequest(BaseModel):
    """Input for creating a bulk acquisition job."""
    items: List[str] = Field(..., description="Item identifiers (tickers)")
    periods: Optional[List[Period]] = Field(
        default=None,
        description="Explicit candidate periods, most recent first; bypasses the resolver"
    )
    horizon: Optional[int] = Field(
        default=None,
        ge=0,
        description="Candidate periods per item (defaults to configuration)"
    )
    force_refresh: bool = False

    @field_validator("items", mode="before")
    @classmethod
    def _normalize_items(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            return v
        seen = set()
        items = []
        for raw in v:
            item = normalize_item(str(raw))
            if not item or len(item) > MAX_ITEM_LENGTH:
                logger.warning(f"Skipping invalid item '{raw}'")
                continue
            if item not in seen:
                seen.add(item)
                items.append(item)
        return items

    @field_validator("periods", mode="before")
    @classmethod
    def _parse_periods(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [Period.parse(p) if isinstance(p, str) else p for p in v]
        return v

    @field_validator("periods")
    @classmethod
    def _order_periods(cls, v: Optional[List[Period]]) -> Optional[List[Period]]:
        # Most recent first, no duplicates
        if v is None:
            return v
        return sorted(set(v), reverse=True)


__all__ = ["JobRequest", "MAX_ITEM_LENGTH"]
