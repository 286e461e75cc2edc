# ============================================================================
# EXECUTION SLOT
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Single-job admission token
# PURPOSE: At most one job runs at a time
# CREATED: 18 OCT 2026
# ============================================================================
"""
Execution Slot

Single-capacity token held by the running job. The orchestrator acquires
it before a job enters RUNNING and releases it when the job leaves
RUNNING for any reason.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ExecutionSlot:
    """Explicit single-holder token (no locking: used from one event loop)."""

    def __init__(self):
        self._holder: Optional[str] = None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def is_free(self) -> bool:
        return self._holder is None

    def try_acquire(self, job_id: str) -> bool:
        """Take the slot for job_id. Re-acquiring by the holder succeeds."""
        if self._holder is None:
            self._holder = job_id
            logger.debug(f"Execution slot acquired by {job_id}")
            return True
        return self._holder == job_id

    def release(self, job_id: str) -> bool:
        """Release the slot. A non-holder release is ignored and returns False."""
        if self._holder != job_id:
            logger.warning(f"Job {job_id} released a slot held by {self._holder}")
            return False
        self._holder = None
        logger.debug(f"Execution slot released by {job_id}")
        return True


__all__ = ["ExecutionSlot"]
