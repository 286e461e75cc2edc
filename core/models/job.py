# ============================================================================
# JOB MODEL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core model - One bulk acquisition request
# PURPOSE: Track items, status, progress counters and the result log
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: Job, JobProgress, ItemOutcome, ProgressSnapshot
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Model

A Job represents one bulk acquisition request: an ordered list of items,
each resolved against a list of candidate periods.

Progress counters move only at batch boundaries. Each item is in exactly
one of pending / processed / failed / skipped, and
progress.current == len(processed) + len(failed).
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, computed_field

from core.contracts import (
    JOB_TRANSITIONS,
    ItemStatus,
    JobData,
    JobStatus,
    ProgressEvent,
    Provenance,
)
from core.models.period import Period


class ItemOutcome(BaseModel):
    """Terminal result for one item within a job."""
    item: str
    status: ItemStatus
    period: Optional[Period] = Field(
        default=None,
        description="Period the artifact was found at (success/skipped)"
    )
    error: Optional[str] = Field(default=None, max_length=500)
    message: str = ""
    provenance: Optional[Provenance] = None
    attempts: int = Field(default=0, ge=0, description="Fetch calls issued for this item")

    @property
    def is_done(self) -> bool:
        return self.status.is_done()


class JobProgress(BaseModel):
    """Progress counters, as shown to pollers."""
    current: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    currently_processing_item: Optional[str] = None
    processed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def settled(self) -> int:
        """Items with any terminal outcome, skipped included."""
        return len(self.processed) + len(self.failed) + len(self.skipped)

    @computed_field
    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(min(100.0, self.settled / self.total * 100), 2)

    def apply(self, outcome: ItemOutcome) -> None:
        """Move one item into the list matching its outcome."""
        self.discard(outcome.item)
        if outcome.status == ItemStatus.SUCCESS:
            self.processed.append(outcome.item)
        elif outcome.status == ItemStatus.FAILED:
            self.failed.append(outcome.item)
        else:
            self.skipped.append(outcome.item)
        self.current = len(self.processed) + len(self.failed)

    def discard(self, item: str) -> None:
        """Return an item to pending."""
        for bucket in (self.processed, self.failed, self.skipped):
            if item in bucket:
                bucket.remove(item)
        self.current = len(self.processed) + len(self.failed)


class ProgressSnapshot(BaseModel):
    """Read-only copy of a job's progress, safe to hand to pollers."""
    job_id: str
    status: JobStatus
    current: int
    total: int
    settled: int
    percent: float
    currently_processing_item: Optional[str] = None
    processed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    event: Optional[ProgressEvent] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Job(JobData):
    """
    A bulk acquisition job.

    Lifecycle:
        1. Created with status=PENDING on request
        2. RUNNING when the execution slot frees
        3. May cycle RUNNING <-> PAUSED
        4. COMPLETED once every item has an outcome
        5. FAILED only on an orchestrator fault; CANCELLED on request
    """

    items: List[str] = Field(..., description="Normalized items in request order")
    periods: Optional[List[Period]] = Field(
        default=None,
        description="Explicit candidate periods (bypasses the period resolver)"
    )
    horizon: int = Field(default=16, ge=0)
    force_refresh: bool = False

    status: JobStatus = Field(default=JobStatus.PENDING)
    progress: JobProgress = Field(default_factory=JobProgress)
    results: List[ItemOutcome] = Field(default_factory=list)

    error_message: Optional[str] = Field(default=None, max_length=2000)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def model_post_init(self, __context: Any) -> None:
        if self.progress.total == 0 and self.items:
            self.progress.total = len(self.items)

    # =========================================================================
    # STATE MACHINE
    # =========================================================================
    @computed_field
    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """Validate a status transition against the lifecycle table."""
        if self.status == new_status:
            return True
        return new_status in JOB_TRANSITIONS.get(self.status, set())

    def _transition(self, new_status: JobStatus) -> None:
        if not self.can_transition_to(new_status):
            raise ValueError(f"Cannot transition from {self.status.value} to {new_status.value}")
        self.status = new_status
        self.updated_at = datetime.utcnow()

    def mark_running(self) -> None:
        """Take the execution slot (from PENDING, or PAUSED on resume)."""
        self._transition(JobStatus.RUNNING)
        if self.started_at is None:
            self.started_at = datetime.utcnow()

    def mark_paused(self) -> None:
        self._transition(JobStatus.PAUSED)
        self.progress.currently_processing_item = None

    def mark_completed(self) -> None:
        if self.pending_items():
            raise ValueError(
                f"Cannot complete job {self.job_id}: "
                f"{len(self.pending_items())} items have no outcome"
            )
        self._transition(JobStatus.COMPLETED)
        self.completed_at = datetime.utcnow()
        self.progress.currently_processing_item = None

    def mark_failed(self, error_message: str) -> None:
        self._transition(JobStatus.FAILED)
        self.error_message = error_message[:2000]
        self.completed_at = datetime.utcnow()
        self.progress.currently_processing_item = None

    def mark_cancelled(self) -> None:
        self._transition(JobStatus.CANCELLED)
        self.completed_at = datetime.utcnow()
        self.progress.currently_processing_item = None

    def reset_to_pending(self) -> None:
        """Startup recovery: forget in-memory execution state, keep outcomes."""
        self._transition(JobStatus.PENDING)
        self.progress.currently_processing_item = None

    # =========================================================================
    # OUTCOMES
    # =========================================================================
    def record_outcome(self, outcome: ItemOutcome) -> None:
        """Add or replace the result-log entry for one item."""
        self.results = [r for r in self.results if r.item != outcome.item]
        self.results.append(outcome)
        self.progress.apply(outcome)
        self.updated_at = datetime.utcnow()

    def record_outcomes(self, outcomes: Iterable[ItemOutcome]) -> None:
        for outcome in outcomes:
            self.record_outcome(outcome)

    def outcome_for(self, item: str) -> Optional[ItemOutcome]:
        for outcome in self.results:
            if outcome.item == item:
                return outcome
        return None

    def pending_items(self) -> List[str]:
        """Items without an outcome, in request order."""
        settled = {r.item for r in self.results}
        return [item for item in self.items if item not in settled]

    def restore(self, done: Dict[str, ItemOutcome], retry_failed: bool = True) -> None:
        """
        Rebuild outcomes and counters from checkpointed done items.

        With retry_failed, items that failed in an earlier run return to
        pending so the new run attempts them again. A job resumed after a
        pause passes retry_failed=False and keeps its failed outcomes, so
        progress never goes down. Done items keep their checkpointed outcome.
        """
        failed = {} if retry_failed else {
            r.item: r for r in self.results if r.status == ItemStatus.FAILED
        }
        self.results = []
        self.progress = JobProgress(total=len(self.items))
        for item in self.items:
            if item in done:
                self.record_outcome(done[item])
            elif item in failed:
                self.record_outcome(failed[item])

    def snapshot(self, event: Optional[ProgressEvent] = None) -> ProgressSnapshot:
        """Copy of the current progress for pollers and subscribers."""
        return ProgressSnapshot(
            job_id=self.job_id,
            status=self.status,
            current=self.progress.current,
            total=self.progress.total,
            settled=self.progress.settled,
            percent=self.progress.percent,
            currently_processing_item=self.progress.currently_processing_item,
            processed=list(self.progress.processed),
            failed=list(self.progress.failed),
            skipped=list(self.progress.skipped),
            error_message=self.error_message,
            event=event,
            updated_at=self.updated_at,
        )

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        if not self.started_at:
            return None
        end_time = self.completed_at or datetime.utcnow()
        return (end_time - self.started_at).total_seconds()


__all__ = ["Job", "JobProgress", "ItemOutcome", "ProgressSnapshot"]
