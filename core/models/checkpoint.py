# ============================================================================
# CHECKPOINT MODEL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core model - Durable per-job record of completed items
# PURPOSE: Let a restarted job skip items it already finished
# CREATED: 18 OCT 2026
# EXPORTS: JobCheckpoint
# DEPENDENCIES: pydantic
# ============================================================================
"""
Checkpoint Model

A JobCheckpoint is persisted independently of the Job record. The
orchestrator writes it once per batch, before updating job progress, so
the checkpoint never claims less than the job shows and a crash loses at
most one batch.

Only done outcomes (success, skipped) are recorded. Failed items are not
checkpointed and are attempted again by the next run of the job.
"""

from datetime import datetime
from typing import Dict, Iterable, List

from pydantic import BaseModel, Field

from core.models.job import ItemOutcome


class JobCheckpoint(BaseModel):
    """
    Checkpoint for one job.

    Example:
        {"job_id": "...", "done_items": ["AAPL", "MSFT"],
         "results": {"AAPL": {...}, "MSFT": {...}}}
    """
    job_id: str = Field(..., max_length=64)
    done_items: List[str] = Field(default_factory=list)
    results: Dict[str, ItemOutcome] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.done_items

    def is_done(self, item: str) -> bool:
        return item in self.results

    def add(self, outcome: ItemOutcome) -> bool:
        """
        Record a done outcome.

        Returns:
            False if the outcome is not a done status (nothing recorded)
        """
        if not outcome.is_done:
            return False
        if outcome.item not in self.results:
            self.done_items.append(outcome.item)
        self.results[outcome.item] = outcome
        self.updated_at = datetime.utcnow()
        return True

    def add_many(self, outcomes: Iterable[ItemOutcome]) -> int:
        return sum(1 for outcome in outcomes if self.add(outcome))

    def remaining(self, items: Iterable[str]) -> List[str]:
        """items minus done items, preserving order."""
        return [item for item in items if item not in self.results]


__all__ = ["JobCheckpoint"]
