# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Business logic layer
# PURPOSE: Period resolution, fetching, caching, checkpoints, job lifecycle
# CREATED: 18 OCT 2026
# ============================================================================
"""
Services Module

Business logic for bulk acquisition.
Services coordinate between repositories and the provider.

Usage:
    from services import JobService, ArtifactCache

    job_service = JobService(job_repo)
    job = await job_service.create_job(JobRequest(items=["AAPL", "MSFT"]))
"""

from . import period_resolver
from .fetch_client import FetchClient, fallback_artifact
from .artifact_cache import ArtifactCache
from .checkpoint_service import CheckpointService
from .job_service import JobService

__all__ = [
    "period_resolver",
    "FetchClient",
    "fallback_artifact",
    "ArtifactCache",
    "CheckpointService",
    "JobService",
]
