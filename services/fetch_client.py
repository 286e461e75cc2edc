# ============================================================================
# FETCH CLIENT
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - External provider client
# PURPOSE: One call per (item, period) with timeout and failure classification
# CREATED: 18 OCT 2026
# ============================================================================
"""
Fetch Client

Wraps the provider's transcript endpoint with httpx.

Outcome classification:
    200 + payload             -> live Artifact
    200 empty, 404, other 4xx -> None (NotFound: try the next candidate)
    429                       -> RateLimitedError (retry the same candidate)
    5xx, network error        -> TransientFetchError (retry, then NotFound)
    401/403, entitlement msg  -> labelled fallback Artifact
    timeout                   -> labelled fallback Artifact
    no credential (demo)      -> labelled fallback Artifact, no network call

The client never touches the artifact cache. Writing results is the
caller's job, which keeps this class testable with httpx.MockTransport.

Usage:
    async with FetchClient(FetchDefaults.from_env()) as client:
        artifact = await client.fetch("AAPL", Period(year=2025, quarter=2))
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from core.config.defaults import FetchDefaults
from core.contracts import Provenance
from core.errors import (
    AccessDeniedError,
    FetchTimeoutError,
    RateLimitedError,
    TransientFetchError,
)
from core.models import Artifact, Period, normalize_item

logger = logging.getLogger(__name__)

FALLBACK_DEMO = "demo_mode"
FALLBACK_ACCESS_DENIED = "access_denied"
FALLBACK_TIMEOUT = "timeout"

_ENTITLEMENT_MARKERS = ("premium subscribers", "premium subscription", "not entitled")


def parse_retry_after(value: Optional[str]) -> float:
    """Seconds from a Retry-After header. HTTP-date values fall back to 0."""
    if not value:
        return 0.0
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return 0.0


def demo_payload(item: str, period: Period) -> str:
    """Clearly labelled placeholder document for demo and fallback mode."""
    return (
        f"{item} {period.label} Earnings Call Transcript\n\n"
        f"[DEMO DATA - sample content, not a real transcript]\n\n"
        f"Operator: Good morning and welcome to {item}'s {period.label} earnings "
        f"conference call.\n\n"
        f"CEO: Thank you for joining us today. Our {period.label} results reflect "
        f"continued growth across our business segments.\n\n"
        f"CFO: Revenue and cash flow were in line with our expectations for the "
        f"quarter, and our balance sheet remains strong.\n\n"
        f"[End of Demo Transcript]"
    )


def fallback_artifact(item: str, period: Period, reason: str) -> Artifact:
    """Substitute artifact so the pipeline keeps flowing."""
    return Artifact(
        item=item,
        period=period,
        payload=demo_payload(normalize_item(item), period),
        call_date=f"{period.year}-{period.quarter * 3:02d}-15",
        company_name=f"{normalize_item(item)} Inc.",
        provenance=Provenance.FALLBACK,
        fallback_reason=reason,
    )


def _mentions_entitlement(response: httpx.Response) -> bool:
    try:
        text = response.text.lower()
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return False
    return any(marker in text for marker in _ENTITLEMENT_MARKERS)


class FetchClient:
    """
    Provider client for one (item, period) at a time.

    Enforces a client-side minimum interval between requests on top of the
    orchestrator's batch throttle.
    """

    def __init__(
        self,
        settings: Optional[FetchDefaults] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize fetch client.

        Args:
            settings: Provider configuration (defaults to environment)
            http_client: Preconfigured client (tests pass a MockTransport client)
            sleep: Awaitable sleep used by the request throttle
            clock: Monotonic clock used by the request throttle
        """
        self.settings = settings or FetchDefaults.from_env()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={
                "X-Api-Key": self.settings.api_key,
                "Content-Type": "application/json",
            },
        )
        self._sleep = sleep
        self._clock = clock
        self._throttle_lock = asyncio.Lock()

        # Usage statistics
        self._request_count = 0
        self._last_request_at: Optional[float] = None
        self._last_request_time: Optional[datetime] = None

    async def __aenter__(self) -> "FetchClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def is_demo(self) -> bool:
        return self.settings.is_demo

    # =========================================================================
    # FETCH
    # =========================================================================
    async def fetch(self, item: str, period: Period) -> Optional[Artifact]:
        """
        Fetch the artifact for (item, period).

        Returns:
            Artifact (live or fallback), or None when the provider has no
            data for this period

        Raises:
            RateLimitedError: provider asked us to slow down
            TransientFetchError: network or server failure
        """
        item = normalize_item(item)

        if self.is_demo:
            logger.debug(f"Demo mode, returning fallback for {item} {period.key}")
            return fallback_artifact(item, period, FALLBACK_DEMO)

        try:
            return await asyncio.wait_for(
                self._request(item, period),
                timeout=self.settings.timeout_seconds,
            )
        except (asyncio.TimeoutError, FetchTimeoutError):
            logger.warning(
                f"Fetch for {item} {period.key} exceeded {self.settings.timeout_seconds}s, "
                f"using fallback"
            )
            return fallback_artifact(item, period, FALLBACK_TIMEOUT)
        except AccessDeniedError as e:
            logger.warning(f"Access denied for {item} {period.key} ({e}), using fallback")
            return fallback_artifact(item, period, FALLBACK_ACCESS_DENIED)

    async def _request(self, item: str, period: Period) -> Optional[Artifact]:
        await self._throttle()
        self._request_count += 1
        self._last_request_time = datetime.utcnow()

        try:
            response = await self._client.get(
                self.settings.endpoint,
                params={"ticker": item, "year": period.year, "quarter": period.quarter},
            )
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"Provider timeout: {e}") from e
        except httpx.TransportError as e:
            raise TransientFetchError(f"Network error: {e}") from e

        return self._classify(item, period, response)

    def _classify(
        self,
        item: str,
        period: Period,
        response: httpx.Response,
    ) -> Optional[Artifact]:
        status = response.status_code

        if status == 200:
            return self._parse_payload(item, period, response)

        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"Rate limited on {item} {period.key} (retry_after={retry_after}s)")
            raise RateLimitedError(retry_after=retry_after)

        if status in (401, 403) or (400 <= status < 500 and _mentions_entitlement(response)):
            raise AccessDeniedError(f"HTTP {status}", status_code=status)

        if status >= 500:
            raise TransientFetchError(f"HTTP {status}", status_code=status)

        if status != 404:
            logger.warning(f"Unexpected HTTP {status} for {item} {period.key}, treating as not found")
        else:
            logger.debug(f"No data for {item} {period.key}")
        return None

    def _parse_payload(
        self,
        item: str,
        period: Period,
        response: httpx.Response,
    ) -> Optional[Artifact]:
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Unparsable response body for {item} {period.key}")
            return None

        # Some endpoints wrap the record in a list
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            logger.warning(f"No transcript data received for {item} {period.key}")
            return None

        payload = data.get("transcript")
        if not isinstance(payload, str) or not payload.strip():
            logger.info(f"Empty transcript for {item} {period.key}")
            return None

        returned = data.get("ticker")
        if returned and normalize_item(str(returned)) != normalize_item(item):
            logger.debug(f"Provider returned ticker {returned} for {item}, keeping {item}")

        call_date = data.get("date")
        company_name = data.get("company_name") or data.get("companyName")
        try:
            artifact = Artifact(
                item=item,
                period=period,
                payload=payload,
                call_date=str(call_date) if call_date else None,
                company_name=str(company_name) if company_name else None,
                provenance=Provenance.LIVE,
            )
        except ValidationError as e:
            logger.warning(
                f"Malformed transcript record for {item} {period.key} "
                f"({e.error_count()} errors), treating as not found"
            )
            return None

        logger.info(f"Fetched {item} {period.key} ({len(payload)} chars)")
        return artifact

    # =========================================================================
    # THROTTLE & STATS
    # =========================================================================
    async def _throttle(self) -> None:
        interval = self.settings.min_request_interval_seconds
        if interval <= 0:
            return
        async with self._throttle_lock:
            now = self._clock()
            if self._last_request_at is not None:
                wait = self._last_request_at + interval - now
                if wait > 0:
                    logger.debug(f"Rate limiting: waiting {wait:.3f}s")
                    await self._sleep(wait)
                    now = self._clock()
            self._last_request_at = now

    def usage_stats(self) -> Dict[str, Any]:
        return {
            "request_count": self._request_count,
            "last_request_time": self._last_request_time,
            "is_demo": self.is_demo,
        }

    def reset_stats(self) -> None:
        self._request_count = 0
        self._last_request_time = None


__all__ = [
    "FetchClient",
    "fallback_artifact",
    "demo_payload",
    "parse_retry_after",
    "FALLBACK_DEMO",
    "FALLBACK_ACCESS_DENIED",
    "FALLBACK_TIMEOUT",
]
