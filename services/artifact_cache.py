# ============================================================================
# ARTIFACT CACHE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Idempotent store of fetched artifacts
# PURPOSE: (item, period) -> Artifact, snapshot-persisted
# CREATED: 18 OCT 2026
# ============================================================================
"""
Artifact Cache

Keyed by make_cache_key(item, period). Writes are idempotent: set() never
replaces an existing entry unless overwrite=True, so two workers racing on
the same key leave one well-formed entry.

Durability is by snapshot. Callers snapshot periodically (every N batches)
and on shutdown; snapshot(force=False) is a no-op when nothing changed.

Usage:
    cache = ArtifactCache(ChunkedJsonStore(data_dir / "chunks"))
    cache.load()
    if not cache.has("AAPL", period):
        cache.set(artifact)
    cache.snapshot()
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.models import Artifact, Period, make_cache_key
from repositories.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class ArtifactCache:
    """Artifact store used by the item worker."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._hits = 0
        self._misses = 0
        self._writes = 0

    def load(self) -> int:
        """
        Load the durable copy.

        Records that do not validate as Artifacts are dropped from memory
        (the damaged file itself was already backed up by the store).

        Returns:
            Number of usable artifacts
        """
        self.store.load()
        dropped = 0
        for key, record in self.store.items():
            try:
                Artifact.from_record(record)
            except (ValidationError, TypeError) as e:
                logger.warning(f"Dropping unreadable cache entry {key}: {e}")
                self.store.delete(key)
                dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} unreadable cache entries")
        logger.info(f"Artifact cache loaded {len(self.store)} entries")
        return len(self.store)

    def has(self, item: str, period: Period) -> bool:
        return make_cache_key(item, period) in self.store

    def get(self, item: str, period: Period) -> Optional[Artifact]:
        record = self.store.get(make_cache_key(item, period))
        if record is None:
            self._misses += 1
            return None
        try:
            artifact = Artifact.from_record(record)
        except (ValidationError, TypeError) as e:
            logger.warning(f"Unreadable cache entry {make_cache_key(item, period)}: {e}")
            self._misses += 1
            return None
        self._hits += 1
        return artifact

    def set(self, artifact: Artifact, overwrite: bool = False) -> bool:
        """
        Store an artifact.

        Args:
            artifact: Artifact to store
            overwrite: Replace an existing entry (force_refresh)

        Returns:
            True if written, False if an entry existed and was kept
        """
        key = artifact.cache_key
        if key in self.store and not overwrite:
            logger.debug(f"Cache entry {key} exists, keeping it")
            return False
        self.store.set(key, artifact.to_record())
        self._writes += 1
        return True

    def delete(self, item: str, period: Period) -> bool:
        return self.store.delete(make_cache_key(item, period))

    def keys(self) -> List[str]:
        return self.store.keys()

    def snapshot(self, force: bool = False) -> bool:
        """
        Persist the cache.

        Returns:
            True if a snapshot was written

        Raises:
            StoreError: if the durable write fails
        """
        if not force and not self.store.dirty:
            return False
        self.store.snapshot()
        logger.info(f"Artifact cache snapshot written ({len(self.store)} entries)")
        return True

    def close(self) -> None:
        """Final snapshot on shutdown."""
        self.snapshot(force=True)

    def __len__(self) -> int:
        return len(self.store)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self.store),
            "hits": self._hits,
            "misses": self._misses,
            "writes": self._writes,
            "dirty": self.store.dirty,
        }


__all__ = ["ArtifactCache"]
