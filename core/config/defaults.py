# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for batching, retries, provider and storage
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the bulk acquisition orchestrator.
These can be overridden via environment variables or job requests.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# Placeholder key shipped in sample configs; treated as "no credential"
DEMO_API_KEY = "demo_key_for_development"


class CacheLayout(str, Enum):
    """On-disk layout of the artifact cache."""
    SNAPSHOT = "snapshot"        # One JSON file
    CHUNKS = "chunks"            # Directory of fixed-size numbered chunk files


@dataclass(frozen=True)
class OrchestratorDefaults:
    """
    Defaults for job scheduling.

    Controls the two-level throttle: W concurrent workers within a batch
    of B items, and a delay D between batches.
    """
    batch_size: int = 5
    worker_count: int = 3
    batch_delay_seconds: float = 10.0

    # Candidate periods tried per item (most recent first)
    horizon: int = 16

    # Request limits
    max_items_per_job: int = 1000
    max_total_tasks: int = 10000

    # Cache snapshot cadence during long runs
    snapshot_every_batches: int = 5

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if not 1 <= self.worker_count <= self.batch_size:
            raise ValueError(
                f"worker_count must be between 1 and batch_size ({self.batch_size}), "
                f"got {self.worker_count}"
            )
        if self.horizon < 0:
            raise ValueError(f"horizon must be >= 0, got {self.horizon}")
        if self.batch_delay_seconds < 0:
            raise ValueError("batch_delay_seconds must be >= 0")

    @classmethod
    def from_env(cls) -> "OrchestratorDefaults":
        """Create from environment variables."""
        return cls(
            batch_size=int(os.getenv("BATCH_SIZE", 5)),
            worker_count=int(os.getenv("WORKER_COUNT", 3)),
            batch_delay_seconds=float(os.getenv("BATCH_DELAY_SECONDS", 10.0)),
            horizon=int(os.getenv("PERIOD_HORIZON", 16)),
            max_items_per_job=int(os.getenv("MAX_ITEMS_PER_JOB", 1000)),
            max_total_tasks=int(os.getenv("MAX_TOTAL_TASKS", 10000)),
            snapshot_every_batches=int(os.getenv("SNAPSHOT_EVERY_BATCHES", 5)),
        )


@dataclass(frozen=True)
class RetryDefaults:
    """
    Defaults for per-candidate retries (rate limited / transient).
    """
    max_attempts: int = 5
    backoff: str = "exponential"
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            max_attempts=int(os.getenv("FETCH_MAX_ATTEMPTS", 5)),
            backoff=os.getenv("FETCH_BACKOFF", "exponential"),
            initial_delay_seconds=float(os.getenv("FETCH_INITIAL_DELAY_SECONDS", 1.0)),
            max_delay_seconds=float(os.getenv("FETCH_MAX_DELAY_SECONDS", 60.0)),
        )


@dataclass(frozen=True)
class FetchDefaults:
    """
    Defaults for the external provider client.
    """
    base_url: str = "https://api.api-ninjas.com/v1"
    endpoint: str = "/earningstranscript"
    api_key: str = ""
    timeout_seconds: float = 30.0
    min_request_interval_seconds: float = 0.1  # 10 requests per second

    @property
    def is_demo(self) -> bool:
        """Demo mode when no usable credential is configured."""
        return not self.api_key or self.api_key == DEMO_API_KEY

    @classmethod
    def from_env(cls) -> "FetchDefaults":
        """Create from environment variables."""
        return cls(
            base_url=os.getenv("PROVIDER_BASE_URL", "https://api.api-ninjas.com/v1"),
            endpoint=os.getenv("PROVIDER_ENDPOINT", "/earningstranscript"),
            api_key=os.getenv("PROVIDER_API_KEY", ""),
            timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 30.0)),
            min_request_interval_seconds=float(os.getenv("PROVIDER_MIN_INTERVAL_SECONDS", 0.1)),
        )


@dataclass(frozen=True)
class StorageDefaults:
    """
    Defaults for file persistence (jobs, checkpoints, artifact cache).
    """
    data_dir: str = "./cache"
    jobs_file: str = "jobs.json"
    checkpoints_file: str = "checkpoints.json"
    cache_file: str = "transcripts.json"
    chunks_dir: str = "chunks"
    cache_layout: CacheLayout = CacheLayout.SNAPSHOT
    cache_chunk_size: int = 100

    @classmethod
    def from_env(cls) -> "StorageDefaults":
        """Create from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "./cache"),
            cache_layout=CacheLayout(os.getenv("CACHE_LAYOUT", CacheLayout.SNAPSHOT.value)),
            cache_chunk_size=int(os.getenv("CACHE_CHUNK_SIZE", 100)),
        )


@dataclass(frozen=True)
class DatabaseDefaults:
    """
    Defaults for the relational artifact sink.

    The sink is disabled unless a database is configured.
    """
    database_url: Optional[str] = None
    min_pool_size: int = 1
    max_pool_size: int = 5

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    @classmethod
    def from_env(cls) -> "DatabaseDefaults":
        """Create from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            min_pool_size=int(os.getenv("DB_POOL_MIN", 1)),
            max_pool_size=int(os.getenv("DB_POOL_MAX", 5)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    orchestrator: OrchestratorDefaults = field(default_factory=OrchestratorDefaults)
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    fetch: FetchDefaults = field(default_factory=FetchDefaults)
    storage: StorageDefaults = field(default_factory=StorageDefaults)
    database: DatabaseDefaults = field(default_factory=DatabaseDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            orchestrator=OrchestratorDefaults.from_env(),
            retry=RetryDefaults.from_env(),
            fetch=FetchDefaults.from_env(),
            storage=StorageDefaults.from_env(),
            database=DatabaseDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DEMO_API_KEY",
    "CacheLayout",
    "OrchestratorDefaults",
    "RetryDefaults",
    "FetchDefaults",
    "StorageDefaults",
    "DatabaseDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
