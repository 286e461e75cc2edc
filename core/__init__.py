# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models and errors
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================

from core.contracts import JobStatus, ItemStatus, Provenance, ProgressEvent
from core.models import (
    Period,
    Artifact,
    RetryPolicy,
    Job,
    JobProgress,
    ItemOutcome,
    ProgressSnapshot,
    JobRequest,
    JobCheckpoint,
)
from core.errors import (
    FetchError,
    RateLimitedError,
    TransientFetchError,
    AccessDeniedError,
    FetchTimeoutError,
    OrchestratorFatalError,
    JobValidationError,
    StoreError,
)

__all__ = [
    # Enums
    "JobStatus",
    "ItemStatus",
    "Provenance",
    "ProgressEvent",
    # Models
    "Period",
    "Artifact",
    "RetryPolicy",
    "Job",
    "JobProgress",
    "ItemOutcome",
    "ProgressSnapshot",
    "JobRequest",
    "JobCheckpoint",
    # Errors
    "FetchError",
    "RateLimitedError",
    "TransientFetchError",
    "AccessDeniedError",
    "FetchTimeoutError",
    "OrchestratorFatalError",
    "JobValidationError",
    "StoreError",
]
