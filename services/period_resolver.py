# ============================================================================
# PERIOD RESOLVER
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Candidate period lists
# PURPOSE: item -> most-recent-first list of quarters to try
# CREATED: 18 OCT 2026
# ============================================================================
"""
Period Resolver

Pure functions, no I/O. resolve() starts at the most recently closed
quarter and walks backwards one quarter at a time, so the worker tries
the newest document first and stops at the first hit.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple, Union

from core.models import Period


def resolve(
    item: str,
    horizon: int,
    now: Optional[Union[date, datetime]] = None,
) -> List[Period]:
    """
    Candidate periods for one item.

    Args:
        item: Item identifier. Every item currently shares the same list.
        horizon: Number of candidates
        now: Reference time (defaults to current UTC time)

    Returns:
        horizon distinct periods, strictly decreasing

    Raises:
        ValueError: if horizon is negative
    """
    if horizon < 0:
        raise ValueError(f"horizon must be >= 0, got {horizon}")

    current = Period.last_closed(now or datetime.utcnow())
    candidates = []
    for _ in range(horizon):
        candidates.append(current)
        current = current.previous()
    return candidates


def periods_in_range(
    start: Union[date, datetime],
    end: Union[date, datetime],
) -> List[Period]:
    """Every quarter touched by [start, end], ascending. Empty if start > end."""
    current = Period.containing(start)
    last = Period.containing(end)
    periods = []
    while current <= last:
        periods.append(current)
        current = current.next()
    return periods


def quarter_date_range(period: Period) -> Tuple[date, date]:
    """First and last calendar day of a quarter."""
    start = date(period.year, (period.quarter - 1) * 3 + 1, 1)
    following = period.next()
    end = date(following.year, (following.quarter - 1) * 3 + 1, 1) - timedelta(days=1)
    return start, end


__all__ = ["resolve", "periods_in_range", "quarter_date_range"]
