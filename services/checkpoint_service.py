# ============================================================================
# CHECKPOINT SERVICE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Checkpoint management
# PURPOSE: Record done items per batch, load them back on restart
# CREATED: 18 OCT 2026
# ============================================================================
"""
Checkpoint Service

Coordinates checkpoint operations for resumable jobs.

Key responsibilities:
- Record the done items of each finished batch (before progress moves)
- Load the done set when a job starts or resumes
- Clear the checkpoint once a job completes or is cancelled
"""

import logging
from typing import Dict, Iterable

from core.models import ItemOutcome, JobCheckpoint
from repositories import CheckpointRepository

logger = logging.getLogger(__name__)


class CheckpointService:
    """
    Service for managing job checkpoints.

    Used by:
    - Orchestrator to record each batch, to restore on start and to
      clear terminal jobs
    """

    def __init__(self, checkpoint_repo: CheckpointRepository):
        self.checkpoint_repo = checkpoint_repo

    async def load(self, job_id: str) -> JobCheckpoint:
        """
        Checkpoint for a job, or an empty one if none is stored.

        Returns:
            JobCheckpoint (never None)
        """
        checkpoint = await self.checkpoint_repo.get(job_id)
        if checkpoint is None:
            return JobCheckpoint(job_id=job_id)
        logger.info(
            f"Loaded checkpoint for job {job_id}: "
            f"{len(checkpoint.done_items)} done items"
        )
        return checkpoint

    async def record_batch(self, job_id: str, outcomes: Iterable[ItemOutcome]) -> JobCheckpoint:
        """
        Add a batch's done outcomes and persist.

        Failed outcomes are ignored. The write happens even when nothing new
        is done, so the checkpoint's timestamp tracks the last batch.

        Raises:
            OrchestratorFatalError: if the durable write fails
        """
        checkpoint = await self.load(job_id)
        added = checkpoint.add_many(outcomes)
        await self.checkpoint_repo.save(checkpoint)
        logger.debug(f"Checkpoint for job {job_id}: +{added} done, {len(checkpoint.done_items)} total")
        return checkpoint

    async def record_done(self, job_id: str, item: str, outcome: ItemOutcome) -> JobCheckpoint:
        """Single-item form of record_batch. The outcome is filed under item."""
        if outcome.item != item:
            outcome = outcome.model_copy(update={"item": item})
        return await self.record_batch(job_id, [outcome])

    async def done_outcomes(self, job_id: str) -> Dict[str, ItemOutcome]:
        """item -> outcome for every done item of a job."""
        checkpoint = await self.load(job_id)
        return dict(checkpoint.results)

    async def clear(self, job_id: str) -> bool:
        """Remove a job's checkpoint. Returns True if one existed."""
        deleted = await self.checkpoint_repo.delete(job_id)
        if deleted:
            logger.info(f"Cleared checkpoint for job {job_id}")
        return deleted


__all__ = ["CheckpointService"]
