# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Job orchestration
# PURPOSE: Execution slot, item worker, progress publishing, orchestration loop
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Module

The orchestration loop that drives bulk acquisition jobs.

Usage:
    from orchestrator import Orchestrator, ItemWorker

    worker = ItemWorker(fetch_client, cache, retry_policy)
    orchestrator = Orchestrator(job_service, checkpoint_service, worker, cache)
    await orchestrator.start()  # Recovers and queues pending jobs
"""

from .slot import ExecutionSlot
from .progress import ProgressPublisher
from .worker import ItemWorker
from .loop import Orchestrator

__all__ = [
    "ExecutionSlot",
    "ProgressPublisher",
    "ItemWorker",
    "Orchestrator",
]
