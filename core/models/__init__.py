# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the bulk acquisition system. Every model
round-trips through model_dump(mode="json") / model_validate, which is
how the file-backed repositories persist them.
"""

from core.models.period import Period
from core.models.artifact import Artifact, make_cache_key, normalize_item
from core.models.retry import RetryPolicy
from core.models.job import Job, JobProgress, ItemOutcome, ProgressSnapshot
from core.models.checkpoint import JobCheckpoint
from core.models.request import JobRequest

__all__ = [
    # Period
    "Period",
    # Artifact
    "Artifact",
    "make_cache_key",
    "normalize_item",
    # Retry
    "RetryPolicy",
    # Job
    "Job",
    "JobProgress",
    "ItemOutcome",
    "ProgressSnapshot",
    "JobRequest",
    # Checkpoint
    "JobCheckpoint",
]
