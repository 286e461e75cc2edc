# ============================================================================
# CHECKPOINT REPOSITORY
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Checkpoint persistence
# PURPOSE: Durable per-job done-item records, independent of job records
# CREATED: 18 OCT 2026
# ============================================================================
"""
Checkpoint Repository

Stores one JobCheckpoint per job_id in its own KeyValueStore, so a damaged
or lost job file never takes the checkpoints with it.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from core.errors import OrchestratorFatalError, StoreError
from core.models import JobCheckpoint
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class CheckpointRepository:
    """Repository for JobCheckpoint entities."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load(self) -> int:
        count = self.store.load()
        logger.info(f"Checkpoint repository loaded {count} checkpoints")
        return count

    async def get(self, job_id: str) -> Optional[JobCheckpoint]:
        """
        Get the checkpoint for a job.

        Returns:
            JobCheckpoint or None if absent or unreadable
        """
        record = self.store.get(job_id)
        if record is None:
            return None
        try:
            return JobCheckpoint.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable checkpoint for job {job_id}: {e.error_count()} errors")
            return None

    async def save(self, checkpoint: JobCheckpoint) -> JobCheckpoint:
        """
        Persist a checkpoint.

        Raises:
            OrchestratorFatalError: if the durable write fails
        """
        self.store.set(checkpoint.job_id, checkpoint.model_dump(mode="json"))
        try:
            self.store.snapshot()
        except StoreError as e:
            logger.error(f"Failed to persist checkpoint for job {checkpoint.job_id}: {e}")
            raise OrchestratorFatalError(f"Checkpoint write failed: {e}") from e
        logger.debug(
            f"Saved checkpoint for job {checkpoint.job_id} "
            f"with {len(checkpoint.done_items)} done items"
        )
        return checkpoint

    async def delete(self, job_id: str) -> bool:
        if not self.store.delete(job_id):
            return False
        try:
            self.store.snapshot()
        except StoreError as e:
            raise OrchestratorFatalError(f"Checkpoint delete failed: {e}") from e
        return True
