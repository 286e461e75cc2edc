# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Persistence layer
# PURPOSE: Key-value stores, job/checkpoint repositories, relational sink
# CREATED: 18 OCT 2026
# ============================================================================
"""
Repositories Module

Provides durable storage for bulk acquisition entities.

Usage:
    from repositories import JobRepository, JsonSnapshotStore

    job_repo = JobRepository(JsonSnapshotStore(data_dir / "jobs.json"))
    await job_repo.load()
    job = await job_repo.get(job_id)
"""

from .kv_store import (
    KeyValueStore,
    MemoryStore,
    JsonSnapshotStore,
    ChunkedJsonStore,
)
from .job_repo import JobRepository
from .checkpoint_repo import CheckpointRepository
from .artifact_sink import ArtifactSink, PostgresArtifactSink

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonSnapshotStore",
    "ChunkedJsonStore",
    "JobRepository",
    "CheckpointRepository",
    "ArtifactSink",
    "PostgresArtifactSink",
]
