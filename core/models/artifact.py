# ============================================================================
# ARTIFACT MODEL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core model - Fetched payload for one (item, period)
# PURPOSE: Immutable cache entry with provenance
# CREATED: 18 OCT 2026
# EXPORTS: Artifact, make_cache_key, normalize_item
# DEPENDENCIES: pydantic
# ============================================================================
"""
Artifact Model

An Artifact is the payload retrieved for one (item, period). Artifacts are
frozen: the cache never mutates an entry in place, and replacing one
requires an explicit overwrite.

Provenance distinguishes real provider data from labelled fallbacks
(demo mode, missing entitlement, timeout) so downstream consumers can
filter them out.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from core.contracts import Provenance
from core.models.period import Period


def normalize_item(item: str) -> str:
    """Items are case-insensitive; the canonical form is stripped upper-case."""
    return (item or "").strip().upper()


def make_cache_key(item: str, period: Period) -> str:
    """Cache key for (item, period), e.g. 'AAPL-2025-Q3'."""
    return f"{normalize_item(item)}-{period.key}"


class Artifact(BaseModel):
    """
    Payload for one (item, period).

    Maps to: one entry of the artifact cache, one row of the transcripts table.
    """

    model_config = {"frozen": True}

    item: str = Field(..., min_length=1, max_length=16)
    period: Period
    payload: str = Field(..., description="Document text")
    call_date: Optional[str] = Field(
        default=None,
        description="Provider-reported event date (ISO string, unparsed)"
    )
    company_name: Optional[str] = None
    retrieved_at: datetime = Field(default_factory=datetime.utcnow)
    provenance: Provenance = Field(default=Provenance.LIVE)
    fallback_reason: Optional[str] = Field(
        default=None,
        description="Why a fallback was substituted (demo_mode, access_denied, timeout)"
    )

    @field_validator("item", mode="before")
    @classmethod
    def _normalize_item(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_item(v)
        return v

    @property
    def cache_key(self) -> str:
        return make_cache_key(self.item, self.period)

    @property
    def is_fallback(self) -> bool:
        return self.provenance == Provenance.FALLBACK

    def to_record(self) -> Dict[str, Any]:
        """Serialize for snapshot storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Artifact":
        """Deserialize a snapshot record."""
        return cls.model_validate(record)


__all__ = ["Artifact", "make_cache_key", "normalize_item"]
