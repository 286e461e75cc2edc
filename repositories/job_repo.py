# ============================================================================
# JOB REPOSITORY
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Job persistence
# PURPOSE: Durable job records keyed by job_id
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Repository

CRUD operations for bulk acquisition jobs on top of a KeyValueStore.
Every save is written through to the durable snapshot, so the job file
always reflects the last state change.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from core.contracts import JobStatus
from core.errors import OrchestratorFatalError, StoreError
from core.models import Job
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class JobRepository:
    """Repository for Job entities."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load(self) -> int:
        """Load persisted jobs. Returns the number of usable records."""
        self.store.load()
        usable = 0
        for job_id, record in self.store.items():
            if self._record_to_job(job_id, record) is not None:
                usable += 1
        logger.info(f"Job repository loaded {usable} jobs")
        return usable

    async def save(self, job: Job) -> Job:
        """
        Persist a job (create or replace).

        Raises:
            OrchestratorFatalError: if the durable write fails
        """
        self.store.set(job.job_id, job.model_dump(mode="json"))
        try:
            self.store.snapshot()
        except StoreError as e:
            logger.error(f"Failed to persist job {job.job_id}: {e}")
            raise OrchestratorFatalError(f"Job store write failed: {e}") from e
        return job

    async def get(self, job_id: str) -> Optional[Job]:
        """
        Get a job by ID.

        Returns:
            Job instance or None if not found
        """
        record = self.store.get(job_id)
        if record is None:
            return None
        return self._record_to_job(job_id, record)

    async def list(self, limit: Optional[int] = None) -> List[Job]:
        """All jobs, newest first."""
        jobs = [
            job for job in (
                self._record_to_job(job_id, record) for job_id, record in self.store.items()
            )
            if job is not None
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit] if limit else jobs

    async def list_by_status(self, *statuses: JobStatus) -> List[Job]:
        """Jobs in any of the given statuses, oldest first (queue order)."""
        wanted = set(statuses)
        jobs = [job for job in await self.list() if job.status in wanted]
        jobs.sort(key=lambda j: j.created_at)
        return jobs

    def _record_to_job(self, job_id: str, record) -> Optional[Job]:
        try:
            return Job.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable job record {job_id}: {e.error_count()} errors")
            return None
