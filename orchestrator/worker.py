# ============================================================================
# ITEM WORKER
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Per-item candidate loop
# PURPOSE: Resolve one item to an artifact, trying candidate periods in order
# CREATED: 18 OCT 2026
# ============================================================================
"""
Item Worker

Handles one item of one job:

1. Walk the candidate periods most-recent-first, one at a time
2. Unless force_refresh, a cached candidate ends the item as SKIPPED
   (no provider call for that candidate)
3. Otherwise fetch, retrying rate-limited and transient failures on the
   same candidate with the pre-computed backoff schedule
4. NotFound (or exhausted retries) moves on to the next candidate
5. The first artifact is cached, sent to the sink (live only) and ends the
   item as SUCCESS
6. No candidate left: FAILED with the last error seen

Fetch errors never escape this class. Candidates of one item are never
fetched in parallel; concurrency is across items only.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

from core.contracts import ItemStatus
from core.errors import FetchError, RateLimitedError, TransientFetchError
from core.logging import log_context
from core.models import Artifact, ItemOutcome, Job, Period, RetryPolicy
from repositories.artifact_sink import ArtifactSink
from services.artifact_cache import ArtifactCache
from services.fetch_client import FetchClient

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"


class ItemWorker:
    """Acquires the newest available artifact for one item."""

    def __init__(
        self,
        fetch_client: FetchClient,
        cache: ArtifactCache,
        retry_policy: Optional[RetryPolicy] = None,
        sink: Optional[ArtifactSink] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        """
        Initialize item worker.

        Args:
            fetch_client: Provider client
            cache: Artifact cache (read for skips, written on success)
            retry_policy: Per-candidate retry schedule
            sink: Optional relational sink for live artifacts
            sleep: Awaitable sleep used between retries (injected in tests)
        """
        self.fetch_client = fetch_client
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.sink = sink
        self._sleep = sleep

    async def acquire(
        self,
        job: Job,
        item: str,
        candidates: List[Period],
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> Optional[ItemOutcome]:
        """
        Process one item.

        Args:
            job: Owning job (force_refresh is read from it)
            item: Normalized item
            candidates: Periods to try, most recent first
            is_cancelled: Checked before each candidate

        Returns:
            Terminal ItemOutcome, or None if the job was cancelled before the
            item finished (the item stays pending)
        """
        attempts = 0
        last_error: Optional[str] = None

        for period in candidates:
            if is_cancelled():
                logger.info(f"Job cancelled, leaving {item} pending")
                return None

            with log_context(item=item, period=period.key):
                if not job.force_refresh and self.cache.has(item, period):
                    logger.debug(f"{item} {period.key} already cached, skipping")
                    return ItemOutcome(
                        item=item,
                        status=ItemStatus.SKIPPED,
                        period=period,
                        message=f"Already cached ({period.label})",
                        attempts=attempts,
                    )

                artifact, calls, error = await self._fetch_with_retry(item, period)
                attempts += calls
                if error:
                    last_error = error

                if artifact is None:
                    continue

                self.cache.set(artifact, overwrite=job.force_refresh)
                if not artifact.is_fallback:
                    await self._write_sink(artifact)

                return ItemOutcome(
                    item=item,
                    status=ItemStatus.SUCCESS,
                    period=period,
                    message=f"Fetched {period.label}",
                    provenance=artifact.provenance,
                    attempts=attempts,
                )

        logger.warning(f"No artifact for {item} in {len(candidates)} candidate periods")
        return ItemOutcome(
            item=item,
            status=ItemStatus.FAILED,
            error=(last_error or NOT_FOUND)[:500],
            message=f"No data in {len(candidates)} candidate periods",
            attempts=attempts,
        )

    async def _fetch_with_retry(
        self,
        item: str,
        period: Period,
    ) -> Tuple[Optional[Artifact], int, Optional[str]]:
        """
        Fetch one candidate with bounded retries.

        Returns:
            (artifact or None, calls issued, last error or None)
        """
        delays = self.retry_policy.delays()
        last_error: Optional[str] = None
        calls = 0

        for attempt in range(1, self.retry_policy.max_attempts + 1):
            calls += 1
            try:
                return await self.fetch_client.fetch(item, period), calls, None
            except RateLimitedError as e:
                last_error = str(e)
                if attempt > len(delays):
                    break
                delay = self.retry_policy.wait_for_rate_limit(attempt, e.retry_after)
            except TransientFetchError as e:
                last_error = str(e)
                if attempt > len(delays):
                    break
                delay = delays[attempt - 1]
            except FetchError as e:
                # Anything else the client raises is not worth retrying
                last_error = str(e)
                break

            logger.debug(
                f"Attempt {attempt}/{self.retry_policy.max_attempts} for {item} "
                f"{period.key} failed ({last_error}), retrying in {delay:.1f}s"
            )
            await self._sleep(delay)

        logger.warning(f"Giving up on {item} {period.key} after {calls} calls: {last_error}")
        return None, calls, last_error

    async def _write_sink(self, artifact: Artifact) -> None:
        if self.sink is None:
            return
        try:
            await self.sink.upsert(artifact)
        except Exception as e:
            logger.error(f"Failed to write {artifact.cache_key} to sink: {e}")


__all__ = ["ItemWorker", "NOT_FOUND"]
