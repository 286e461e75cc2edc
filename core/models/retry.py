# ============================================================================
# RETRY POLICY MODEL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core model - Bounded retry with pre-computed backoff
# PURPOSE: Backoff schedule for rate-limited and transient fetch failures
# CREATED: 18 OCT 2026
# EXPORTS: RetryPolicy
# DEPENDENCIES: pydantic
# ============================================================================
"""
Retry Policy

Retries are an explicit bounded loop: the full delay schedule is computed
up front, so a candidate is attempted at most max_attempts times.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from core.config.defaults import RetryDefaults


class RetryPolicy(BaseModel):
    """Retry configuration for one candidate period."""
    max_attempts: int = Field(default=5, ge=1, le=20)
    backoff: str = Field(default="exponential", pattern="^(fixed|exponential|linear)$")
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=60.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed
        """
        if self.backoff == "fixed":
            delay = self.initial_delay_seconds
        elif self.backoff == "linear":
            delay = self.initial_delay_seconds * attempt
        else:
            delay = self.initial_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)

    def delays(self) -> List[float]:
        """Sleeps between attempts (max_attempts - 1 entries)."""
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]

    def wait_for_rate_limit(self, attempt: int, retry_after: Optional[float]) -> float:
        """Honour a provider Retry-After when it exceeds the computed backoff."""
        delay = self.delay_for(attempt)
        if retry_after:
            delay = max(delay, min(retry_after, self.max_delay_seconds))
        return delay

    @classmethod
    def from_defaults(cls, defaults: RetryDefaults) -> "RetryPolicy":
        return cls(
            max_attempts=defaults.max_attempts,
            backoff=defaults.backoff,
            initial_delay_seconds=defaults.initial_delay_seconds,
            max_delay_seconds=defaults.max_delay_seconds,
        )


__all__ = ["RetryPolicy"]
