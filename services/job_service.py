# ============================================================================
# JOB SERVICE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Job lifecycle management
# PURPOSE: Create jobs, persist state changes, recover after restart
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Service

Manages job lifecycle:
- Validate a request and create a PENDING job
- Persist state changes made by the orchestrator
- Serve job and progress reads
- Recover interrupted jobs on startup
"""

import hashlib
import logging
import uuid
from typing import List, Optional

from core.config import OrchestratorDefaults
from core.contracts import JobStatus
from core.errors import JobValidationError
from core.models import Job, JobRequest, ProgressSnapshot
from repositories import JobRepository

logger = logging.getLogger(__name__)


class JobService:
    """Service for job lifecycle management."""

    def __init__(
        self,
        job_repo: JobRepository,
        settings: Optional[OrchestratorDefaults] = None,
    ):
        """
        Initialize job service.

        Args:
            job_repo: Durable job store
            settings: Limits and the default horizon
        """
        self.job_repo = job_repo
        self.settings = settings or OrchestratorDefaults()

    async def create_job(
        self,
        request: JobRequest,
        idempotency_key: Optional[str] = None,
    ) -> Job:
        """
        Create a new job from a request.

        Args:
            request: Normalized job request
            idempotency_key: Optional key; resubmitting it returns the same job

        Returns:
            Created (or existing) Job instance

        Raises:
            JobValidationError: if the request is empty or over the limits
        """
        self._validate(request)

        job_id = self._generate_job_id(idempotency_key)
        if idempotency_key:
            existing = await self.job_repo.get(job_id)
            if existing:
                logger.info(f"Returning existing job {job_id}")
                return existing

        job = Job(
            job_id=job_id,
            items=request.items,
            periods=request.periods,
            horizon=self._horizon(request),
            force_refresh=request.force_refresh,
            status=JobStatus.PENDING,
        )
        await self.job_repo.save(job)

        logger.info(
            f"Created job {job_id} with {len(job.items)} items "
            f"(candidates={self._candidate_count(request)}, force_refresh={job.force_refresh})"
        )
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        return await self.job_repo.get(job_id)

    async def list_jobs(self, limit: Optional[int] = None) -> List[Job]:
        """All jobs, newest first."""
        return await self.job_repo.list(limit)

    async def save(self, job: Job) -> Job:
        """
        Persist a job state change.

        Raises:
            OrchestratorFatalError: if the durable write fails
        """
        return await self.job_repo.save(job)

    async def get_progress(self, job_id: str) -> Optional[ProgressSnapshot]:
        job = await self.job_repo.get(job_id)
        if job is None:
            return None
        return job.snapshot()

    async def recover_on_startup(self) -> List[Job]:
        """
        Requeue jobs interrupted by a restart.

        RUNNING and PAUSED jobs go back to PENDING; their checkpoints are
        untouched, so the next run only processes the remaining items.

        Returns:
            Every PENDING job after recovery, oldest first (queue order)
        """
        interrupted = await self.job_repo.list_by_status(JobStatus.RUNNING, JobStatus.PAUSED)
        for job in interrupted:
            logger.warning(f"Recovering job {job.job_id} from {job.status.value}")
            job.reset_to_pending()
            await self.job_repo.save(job)

        pending = await self.job_repo.list_by_status(JobStatus.PENDING)
        if pending:
            logger.info(f"{len(pending)} jobs pending after recovery ({len(interrupted)} recovered)")
        return pending

    # =========================================================================
    # VALIDATION
    # =========================================================================
    def _horizon(self, request: JobRequest) -> int:
        if request.horizon is not None:
            return request.horizon
        return self.settings.horizon

    def _candidate_count(self, request: JobRequest) -> int:
        if request.periods is not None:
            return len(request.periods)
        return self._horizon(request)

    def _validate(self, request: JobRequest) -> None:
        if not request.items:
            raise JobValidationError("No valid items provided")

        if len(request.items) > self.settings.max_items_per_job:
            raise JobValidationError(
                f"Too many items: {len(request.items)} "
                f"(max {self.settings.max_items_per_job})"
            )

        total_tasks = len(request.items) * self._candidate_count(request)
        if total_tasks > self.settings.max_total_tasks:
            raise JobValidationError(
                f"Too many fetch tasks: {total_tasks} "
                f"(max {self.settings.max_total_tasks})"
            )

    def _generate_job_id(self, idempotency_key: Optional[str] = None) -> str:
        """
        Generate a job ID.

        If idempotency_key is provided, hashes it for a consistent format.
        Otherwise returns a random ID.
        """
        if idempotency_key:
            return hashlib.sha256(idempotency_key.encode()).hexdigest()[:32]
        return uuid.uuid4().hex


__all__ = ["JobService"]
