# ============================================================================
# PROGRESS PUBLISHING
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Progress notification for running jobs
# PURPOSE: Push progress snapshots to subscribers at batch boundaries
# CREATED: 18 OCT 2026
# ============================================================================
"""
Progress Publishing

Subscribers register a callback and receive a ProgressSnapshot at every
lifecycle event of every job. Polling clients read the same snapshot
through the job service instead.

Design:
- Callback-based: sync or async callables both work
- Contained: a failing subscriber is logged and never reaches the job

Usage:
    publisher = ProgressPublisher()
    unsubscribe = publisher.subscribe(lambda snap: print(snap.percent))
    ...
    unsubscribe()
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Union

from core.models import ProgressSnapshot

logger = logging.getLogger(__name__)


# Callback type
ProgressCallback = Callable[[ProgressSnapshot], Union[None, Awaitable[None]]]


class ProgressPublisher:
    """Fan-out of progress snapshots to subscribers."""

    def __init__(self):
        self._subscribers: List[ProgressCallback] = []
        self._published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def published_count(self) -> int:
        return self._published

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Register a subscriber.

        Returns:
            Callable that removes the subscription (safe to call twice)
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, snapshot: ProgressSnapshot) -> None:
        """Deliver a snapshot to every subscriber in registration order."""
        self._published += 1
        logger.debug(
            f"Progress {snapshot.job_id}: {snapshot.percent:.1f}% "
            f"({snapshot.settled}/{snapshot.total}) event={snapshot.event}"
        )

        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Progress subscriber failed for job {snapshot.job_id}: {e}")


__all__ = ["ProgressPublisher", "ProgressCallback"]
