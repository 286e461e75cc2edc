# ============================================================================
# ORCHESTRATION LOOP
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Single-slot job orchestration loop
# PURPOSE: Run jobs one at a time, items in throttled concurrent batches
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestration Loop

Jobs wait in a ready queue and run one at a time (the execution slot).
A running job processes its remaining items in batches:

1. Take the next batch of B remaining items
2. Run them concurrently, at most W in flight (semaphore)
3. Join tolerantly: one item's exception fails that item only
4. Checkpoint write -> progress update -> job save -> publish
5. Snapshot the artifact cache every N batches
6. Stop here if the job was paused or cancelled, else sleep D
7. Repeat; once every item has an outcome the job is COMPLETED

Checkpoint and job store failures (OrchestratorFatalError) are the only
errors that fail a job. The slot is released whatever happens and the
next job is admitted.

Runs as a background task in the FastAPI application, or driven to
completion by the CLI through drain().
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from core.config import OrchestratorDefaults
from core.contracts import ItemStatus, JobStatus, ProgressEvent
from core.errors import OrchestratorFatalError, StoreError
from core.logging import log_context, log_event
from core.models import ItemOutcome, Job, JobRequest, Period, ProgressSnapshot
from services import period_resolver
from services.artifact_cache import ArtifactCache
from services.checkpoint_service import CheckpointService
from services.job_service import JobService
from .progress import ProgressPublisher
from .slot import ExecutionSlot
from .worker import ItemWorker

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Single-slot bulk acquisition orchestrator.

    Each instance:
    - Admits one job at a time through its ExecutionSlot
    - Runs new jobs in submission order; resumed jobs go first
    - Persists progress only at batch boundaries
    - Exposes pause / resume / cancel / progress control
    """

    def __init__(
        self,
        job_service: JobService,
        checkpoint_service: CheckpointService,
        worker: ItemWorker,
        cache: Optional[ArtifactCache] = None,
        settings: Optional[OrchestratorDefaults] = None,
        publisher: Optional[ProgressPublisher] = None,
        slot: Optional[ExecutionSlot] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            job_service: Job lifecycle and persistence
            checkpoint_service: Per-batch done-item records
            worker: Per-item candidate loop
            cache: Artifact cache to snapshot periodically
            settings: Batch size, worker count, delay, snapshot cadence
            publisher: Progress subscribers
            slot: Execution slot (single running job)
            sleep: Awaitable sleep for the inter-batch delay
            now: Clock handed to the period resolver
        """
        self.job_service = job_service
        self.checkpoint_service = checkpoint_service
        self.worker = worker
        self.cache = cache
        self.settings = settings or OrchestratorDefaults()
        self.publisher = publisher or ProgressPublisher()
        self.slot = slot or ExecutionSlot()
        self._sleep = sleep
        self._now = now or datetime.utcnow

        # Ready queue of job IDs
        self._queue: Deque[str] = deque()
        self._resume_requested: Set[str] = set()

        # State
        self._accepting = True
        self._stopping = False
        self._active: Optional[Job] = None
        self._current_task: Optional[asyncio.Task] = None
        self._batches_since_snapshot = 0

        # Metrics
        self._started_at: Optional[datetime] = None
        self._jobs_run = 0
        self._batches_run = 0
        self._items_settled = 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    async def start(self) -> List[Job]:
        """
        Recover interrupted jobs and start admitting.

        Returns:
            Jobs queued at startup
        """
        self._accepting = True
        self._stopping = False
        self._started_at = datetime.utcnow()

        pending = await self.job_service.recover_on_startup()
        for job in pending:
            self.enqueue(job.job_id)

        logger.info(
            f"Orchestrator started (batch_size={self.settings.batch_size}, "
            f"workers={self.settings.worker_count}, "
            f"delay={self.settings.batch_delay_seconds}s, queued={len(pending)})"
        )
        return pending

    async def stop(self) -> None:
        """
        Stop admitting jobs and wind down the running one.

        The running job stops at its next batch boundary and returns to
        PENDING, so the next start resumes it from its checkpoint. The
        artifact cache is snapshotted last.
        """
        self._accepting = False
        self._stopping = True

        task = self._current_task
        if task is not None and not task.done():
            logger.info("Waiting for the running job to reach a batch boundary")
            await asyncio.wait({task})

        if self.cache is not None:
            try:
                self.cache.snapshot(force=True)
            except StoreError as e:
                logger.error(f"Final cache snapshot failed: {e}")

        logger.info(f"Orchestrator stopped ({self._jobs_run} jobs run, {self._batches_run} batches)")

    async def drain(self) -> None:
        """Wait until no job is running and nothing runnable is queued."""
        while True:
            task = self._current_task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if not self._queue or not self._accepting:
                return
            self.kick()
            if self._current_task is task:
                return

    # =========================================================================
    # ADMISSION
    # =========================================================================
    async def submit(self, request: JobRequest, idempotency_key: Optional[str] = None) -> Job:
        """Create a job and queue it."""
        job = await self.job_service.create_job(request, idempotency_key=idempotency_key)
        if job.status == JobStatus.PENDING:
            self.enqueue(job.job_id)
        return job

    def enqueue(self, job_id: str, front: bool = False) -> None:
        """Add a job to the ready queue and try to admit it."""
        if job_id in self._queue:
            if not front:
                return
            self._queue.remove(job_id)
        if front:
            self._queue.appendleft(job_id)
        else:
            self._queue.append(job_id)
        self.kick()

    def kick(self) -> None:
        """Admit the next queued job if the slot is free."""
        if not self._accepting or not self.slot.is_free or not self._queue:
            return

        job_id = self._queue.popleft()
        self.slot.try_acquire(job_id)
        self._current_task = asyncio.create_task(
            self._run_guarded(job_id),
            name=f"job-{job_id[:8]}",
        )

    async def _run_guarded(self, job_id: str) -> None:
        try:
            await self.run_job(job_id)
        except Exception as e:
            logger.exception(f"Job {job_id} crashed outside item processing: {e}")
        finally:
            self._active = None
            self.slot.release(job_id)
            self.kick()

    # =========================================================================
    # JOB EXECUTION
    # =========================================================================
    async def run_job(self, job_id: str) -> Optional[Job]:
        """
        Run one job until it completes, pauses, is cancelled or fails.

        The caller holds the execution slot.

        Returns:
            The job in its final state for this run, or None if it was not
            runnable (unknown, terminal, or paused without a resume request)
        """
        job = await self.job_service.get_job(job_id)
        if job is None:
            logger.warning(f"Queued job {job_id} no longer exists")
            return None

        resumed = job.status == JobStatus.PAUSED
        if resumed and job_id not in self._resume_requested:
            logger.info(f"Job {job_id} is paused without a resume request, skipping")
            return None
        if job.status not in (JobStatus.PENDING, JobStatus.PAUSED):
            logger.info(f"Job {job_id} is {job.status.value}, skipping")
            return None

        self._resume_requested.discard(job_id)
        self._active = job
        self._jobs_run += 1

        with log_context(job_id=job_id):
            try:
                await self._execute(job, resumed)
            except OrchestratorFatalError as e:
                logger.error(f"Job {job_id} failed: {e}")
                await self._fail(job, str(e))
            except Exception as e:
                logger.exception(f"Unexpected error in job {job_id}: {e}")
                await self._fail(job, f"Unexpected orchestrator error: {e}")

        return job

    async def _execute(self, job: Job, resumed: bool) -> None:
        job.mark_running()

        checkpoint = await self.checkpoint_service.load(job.job_id)
        # A resumed job keeps its failed outcomes; a fresh or recovered run retries them
        job.restore(checkpoint.results, retry_failed=not resumed)
        await self.job_service.save(job)

        event = ProgressEvent.JOB_RESUMED if resumed else ProgressEvent.JOB_STARTED
        log_event(event.value, {"items": len(job.items), "done": len(checkpoint.done_items)})
        await self._publish(job, event)

        remaining = job.pending_items()
        candidates = self._candidates(job, remaining)
        size = self.settings.batch_size
        batches = [remaining[i:i + size] for i in range(0, len(remaining), size)]
        logger.info(
            f"Job {job.job_id}: {len(remaining)} of {len(job.items)} items remaining "
            f"in {len(batches)} batches"
        )

        for index, batch in enumerate(batches, start=1):
            if self._should_stop(job):
                break

            with log_context(batch=index):
                outcomes = await self._run_batch(job, batch, candidates)

                # Checkpoint first, so it never claims less than the job shows
                await self.checkpoint_service.record_batch(job.job_id, outcomes)
                job.record_outcomes(outcomes)
                job.progress.currently_processing_item = None
                await self.job_service.save(job)

                self._batches_run += 1
                self._items_settled += len(outcomes)
                log_event(ProgressEvent.BATCH_COMPLETED.value, {
                    "settled": len(outcomes),
                    "current": job.progress.current,
                    "total": job.progress.total,
                })
                await self._publish(job, ProgressEvent.BATCH_COMPLETED)
                self._maybe_snapshot()

            if index < len(batches) and not self._should_stop(job):
                await self._sleep(self.settings.batch_delay_seconds)

        await self._finish(job)

    async def _run_batch(
        self,
        job: Job,
        batch: List[str],
        candidates: Dict[str, List[Period]],
    ) -> List[ItemOutcome]:
        """Run one batch with at most worker_count items in flight."""
        semaphore = asyncio.Semaphore(self.settings.worker_count)

        def is_cancelled() -> bool:
            return job.status == JobStatus.CANCELLED

        async def process(item: str) -> Optional[ItemOutcome]:
            async with semaphore:
                if is_cancelled():
                    return None
                job.progress.currently_processing_item = item
                with log_context(item=item):
                    return await self.worker.acquire(job, item, candidates[item], is_cancelled)

        results = await asyncio.gather(
            *(process(item) for item in batch),
            return_exceptions=True,
        )

        outcomes = []
        for item, result in zip(batch, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"Item {item} raised {type(result).__name__}: {result}")
                outcomes.append(ItemOutcome(
                    item=item,
                    status=ItemStatus.FAILED,
                    error=f"{type(result).__name__}: {result}"[:500],
                    message="Unexpected error",
                ))
            elif result is not None:
                outcomes.append(result)
        return outcomes

    async def _finish(self, job: Job) -> None:
        if job.status == JobStatus.RUNNING and self._stopping and job.pending_items():
            # Shutdown mid-job: leave it for startup recovery
            job.reset_to_pending()
            await self.job_service.save(job)
            logger.info(f"Job {job.job_id} interrupted by shutdown, returned to pending")
            return

        if job.status == JobStatus.RUNNING:
            job.mark_completed()
            await self.job_service.save(job)
            log_event(ProgressEvent.JOB_COMPLETED.value, {
                "processed": len(job.progress.processed),
                "failed": len(job.progress.failed),
                "skipped": len(job.progress.skipped),
                "duration_seconds": job.duration_seconds,
            })
            await self._publish(job, ProgressEvent.JOB_COMPLETED)
            await self._clear_checkpoint(job.job_id)
        elif job.status == JobStatus.PAUSED:
            await self.job_service.save(job)
            log_event(ProgressEvent.JOB_PAUSED.value, {"current": job.progress.current})
            await self._publish(job, ProgressEvent.JOB_PAUSED)
        elif job.status == JobStatus.CANCELLED:
            await self.job_service.save(job)
            log_event(ProgressEvent.JOB_CANCELLED.value, {"current": job.progress.current})
            await self._publish(job, ProgressEvent.JOB_CANCELLED)
            await self._clear_checkpoint(job.job_id)

        self._maybe_snapshot(force=True)

    async def _fail(self, job: Job, message: str) -> None:
        if job.can_transition_to(JobStatus.FAILED):
            job.mark_failed(message)
        try:
            await self.job_service.save(job)
        except OrchestratorFatalError as e:
            logger.error(f"Could not persist failure of job {job.job_id}: {e}")
        log_event(ProgressEvent.JOB_FAILED.value, {"error": message[:200]})
        await self._publish(job, ProgressEvent.JOB_FAILED)

    async def _clear_checkpoint(self, job_id: str) -> None:
        # Terminal jobs never resume; a failed clear only leaves a stale record
        try:
            await self.checkpoint_service.clear(job_id)
        except OrchestratorFatalError as e:
            logger.warning(f"Could not clear checkpoint for job {job_id}: {e}")

    def _should_stop(self, job: Job) -> bool:
        return job.status != JobStatus.RUNNING or self._stopping

    def _candidates(self, job: Job, items: List[str]) -> Dict[str, List[Period]]:
        if job.periods is not None:
            return {item: list(job.periods) for item in items}
        now = self._now()
        return {item: period_resolver.resolve(item, job.horizon, now) for item in items}

    def _maybe_snapshot(self, force: bool = False) -> None:
        if self.cache is None:
            return
        self._batches_since_snapshot += 1
        if not force and self._batches_since_snapshot < self.settings.snapshot_every_batches:
            return
        self._batches_since_snapshot = 0
        try:
            self.cache.snapshot()
        except StoreError as e:
            logger.error(f"Cache snapshot failed: {e}")

    async def _publish(self, job: Job, event: ProgressEvent) -> None:
        await self.publisher.publish(job.snapshot(event))

    # =========================================================================
    # CONTROL
    # =========================================================================
    async def _lookup(self, job_id: str) -> Optional[Job]:
        """The live instance for the running job, else the stored record."""
        if self._active is not None and self._active.job_id == job_id:
            return self._active
        return await self.job_service.get_job(job_id)

    async def pause(self, job_id: str) -> bool:
        """
        Pause a running job. It stops at the next batch boundary.

        Returns:
            False if the job is unknown or not running
        """
        job = await self._lookup(job_id)
        if job is None or job.status != JobStatus.RUNNING:
            return False
        job.mark_paused()
        await self.job_service.save(job)
        logger.info(f"Job {job_id} paused")
        return True

    async def resume(self, job_id: str) -> bool:
        """
        Resume a paused job. It goes to the front of the ready queue and
        becomes RUNNING once it holds the execution slot.

        Returns:
            False if the job is unknown or not paused
        """
        job = await self._lookup(job_id)
        if job is None or job.status != JobStatus.PAUSED:
            return False
        self._resume_requested.add(job_id)
        self.enqueue(job_id, front=True)
        logger.info(f"Job {job_id} resume requested")
        return True

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a pending, running or paused job. In-flight fetches finish;
        no further candidates are started.

        Returns:
            False if the job is unknown or already terminal
        """
        job = await self._lookup(job_id)
        if job is None or not job.status.is_cancellable():
            return False

        job.mark_cancelled()
        await self.job_service.save(job)
        self._resume_requested.discard(job_id)
        if job_id in self._queue:
            self._queue.remove(job_id)
        logger.info(f"Job {job_id} cancelled")

        # The run loop publishes for the job it is running
        if job is not self._active:
            await self._publish(job, ProgressEvent.JOB_CANCELLED)
            await self._clear_checkpoint(job_id)
        return True

    async def get_progress(self, job_id: str) -> Optional[ProgressSnapshot]:
        if self._active is not None and self._active.job_id == job_id:
            return self._active.snapshot()
        return await self.job_service.get_progress(job_id)

    # =========================================================================
    # METRICS
    # =========================================================================
    @property
    def running_job_id(self) -> Optional[str]:
        return self.slot.holder

    @property
    def queued_job_ids(self) -> List[str]:
        return list(self._queue)

    def stats(self) -> Dict[str, Any]:
        return {
            "accepting": self._accepting,
            "running_job_id": self.running_job_id,
            "queued": len(self._queue),
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "jobs_run": self._jobs_run,
            "batches_run": self._batches_run,
            "items_settled": self._items_settled,
            "batch_size": self.settings.batch_size,
            "worker_count": self.settings.worker_count,
            "batch_delay_seconds": self.settings.batch_delay_seconds,
        }


__all__ = ["Orchestrator"]
