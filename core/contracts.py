# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Foundation - Core enums and base contracts
# PURPOSE: Status enums shared by jobs, per-item outcomes and artifacts
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: JobStatus, ItemStatus, Provenance, ProgressEvent, JobData
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the bulk acquisition system.

These define the values that cross boundaries:
- Files (job, checkpoint and cache snapshots)
- HTTP (control surface)
- Python (internal processing)
"""

from enum import Enum
from typing import Dict, Set

from pydantic import BaseModel, Field


# ============================================================================
# STATUS ENUMS
# ============================================================================

class JobStatus(str, Enum):
    """
    Job lifecycle states.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED      (orchestrator fault only)
                <-> PAUSED
        PENDING, RUNNING, PAUSED -> CANCELLED
    """
    PENDING = "pending"          # Created or reset, waiting for the execution slot
    RUNNING = "running"          # Holds the execution slot
    PAUSED = "paused"            # Stopped at a batch boundary, keeps its progress
    COMPLETED = "completed"      # Every item has a terminal outcome
    FAILED = "failed"            # Orchestrator-internal fault (never item failures)
    CANCELLED = "cancelled"      # Manually cancelled

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def is_cancellable(self) -> bool:
        """Check if a cancel request is legal from this state."""
        return self in (JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED)


# Legal transitions. A no-op (same status) is handled by the caller.
JOB_TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.CANCELLED},
    JobStatus.RUNNING: {
        JobStatus.PAUSED,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
        JobStatus.PENDING,   # startup recovery only
    },
    JobStatus.PAUSED: {
        JobStatus.RUNNING,
        JobStatus.CANCELLED,
        JobStatus.PENDING,   # startup recovery only
    },
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


class ItemStatus(str, Enum):
    """
    Terminal per-item outcome within a job.

    An item without an outcome is still pending.
    """
    SUCCESS = "success"          # Artifact fetched (live or fallback)
    FAILED = "failed"            # Every candidate period exhausted
    SKIPPED = "skipped"          # Candidate already present in the cache

    def is_done(self) -> bool:
        """Done items are checkpointed and never re-attempted."""
        return self in (ItemStatus.SUCCESS, ItemStatus.SKIPPED)


class Provenance(str, Enum):
    """Where an artifact payload came from."""
    LIVE = "live"                # Real provider response
    FALLBACK = "fallback"        # Labelled substitute (demo, access denied, timeout)


class ProgressEvent(str, Enum):
    """Events published to progress subscribers."""
    JOB_STARTED = "job_started"
    BATCH_COMPLETED = "batch_completed"
    JOB_PAUSED = "job_paused"
    JOB_RESUMED = "job_resumed"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_CANCELLED = "job_cancelled"


# ============================================================================
# BASE DATA CONTRACTS
# ============================================================================

class JobData(BaseModel):
    """
    Essential job identity - the minimum fields that define a job.
    """
    job_id: str = Field(..., max_length=64, description="UUID4 job identifier")

    model_config = {"frozen": False}
