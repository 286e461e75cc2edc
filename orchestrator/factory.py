# ============================================================================
# ORCHESTRATOR FACTORY
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Component wiring
# PURPOSE: Build stores, services and the orchestrator from configuration
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Factory

Shared wiring for the FastAPI app and the command-line runner.

Usage:
    components = build_components(get_defaults())
    await components.load()
    await components.orchestrator.start()
    ...
    await components.close()
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from core.config import CacheLayout, Defaults, StorageDefaults
from core.models import RetryPolicy
from repositories import (
    ChunkedJsonStore,
    CheckpointRepository,
    JobRepository,
    JsonSnapshotStore,
    KeyValueStore,
)
from repositories.artifact_sink import ArtifactSink
from services import ArtifactCache, CheckpointService, FetchClient, JobService
from .loop import Orchestrator
from .progress import ProgressPublisher
from .worker import ItemWorker

logger = logging.getLogger(__name__)


def build_cache_store(storage: StorageDefaults) -> KeyValueStore:
    """Artifact cache backend for the configured layout."""
    data_dir = Path(storage.data_dir)
    if storage.cache_layout == CacheLayout.CHUNKS:
        return ChunkedJsonStore(data_dir / storage.chunks_dir, chunk_size=storage.cache_chunk_size)
    return JsonSnapshotStore(data_dir / storage.cache_file)


@dataclass
class Components:
    """Everything a running orchestrator needs."""
    cache: ArtifactCache
    job_repo: JobRepository
    checkpoint_repo: CheckpointRepository
    job_service: JobService
    checkpoint_service: CheckpointService
    fetch_client: FetchClient
    worker: ItemWorker
    publisher: ProgressPublisher
    orchestrator: Orchestrator

    async def load(self) -> None:
        """Tolerant load of every durable store."""
        self.cache.load()
        await self.job_repo.load()
        await self.checkpoint_repo.load()

    async def close(self) -> None:
        await self.orchestrator.stop()
        await self.fetch_client.close()


def build_components(
    defaults: Defaults,
    sink: Optional[ArtifactSink] = None,
    fetch_client: Optional[FetchClient] = None,
    sleep: Optional[Callable[[float], Any]] = None,
) -> Components:
    """
    Wire file-backed stores, services and the orchestrator.

    Args:
        defaults: Full configuration
        sink: Optional relational sink for live artifacts
        fetch_client: Override the provider client
        sleep: Override the awaitable sleep (retry backoff and batch delay)
    """
    data_dir = Path(defaults.storage.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    cache = ArtifactCache(build_cache_store(defaults.storage))
    job_repo = JobRepository(JsonSnapshotStore(data_dir / defaults.storage.jobs_file))
    checkpoint_repo = CheckpointRepository(
        JsonSnapshotStore(data_dir / defaults.storage.checkpoints_file)
    )

    job_service = JobService(job_repo, defaults.orchestrator)
    checkpoint_service = CheckpointService(checkpoint_repo)
    fetch_client = fetch_client or FetchClient(defaults.fetch)

    extra = {"sleep": sleep} if sleep is not None else {}
    worker = ItemWorker(
        fetch_client,
        cache,
        RetryPolicy.from_defaults(defaults.retry),
        sink=sink,
        **extra,
    )
    publisher = ProgressPublisher()
    orchestrator = Orchestrator(
        job_service,
        checkpoint_service,
        worker,
        cache=cache,
        settings=defaults.orchestrator,
        publisher=publisher,
        **extra,
    )

    if fetch_client.is_demo:
        logger.warning("No provider credential configured, running in demo mode")

    return Components(
        cache=cache,
        job_repo=job_repo,
        checkpoint_repo=checkpoint_repo,
        job_service=job_service,
        checkpoint_service=checkpoint_service,
        fetch_client=fetch_client,
        worker=worker,
        publisher=publisher,
        orchestrator=orchestrator,
    )


__all__ = ["Components", "build_components", "build_cache_store"]
