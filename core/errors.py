# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Foundation - Exception classes
# PURPOSE: Classify fetch failures and orchestrator faults
# CREATED: 18 OCT 2026
# EXPORTS: FetchError, RateLimitedError, TransientFetchError,
#          AccessDeniedError, FetchTimeoutError, OrchestratorFatalError,
#          JobValidationError, StoreError
# ============================================================================
"""
Error Taxonomy

Per-candidate errors (FetchError and subclasses) are contained inside the
item worker and never surface past the item boundary. NotFound is not an
exception: the fetch client returns None.

OrchestratorFatalError is the only error that moves a job to FAILED.
"""

from typing import Optional


class FetchError(Exception):
    """Base class for provider call failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(FetchError):
    """Provider rejected the call for rate reasons. Retry the same candidate."""

    def __init__(
        self,
        message: str = "rate limited",
        retry_after: float = 0.0,
        status_code: Optional[int] = 429,
    ):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class TransientFetchError(FetchError):
    """Network or 5xx failure. Retry the same candidate, then treat as NotFound."""
    pass


class AccessDeniedError(FetchError):
    """Credential lacks the entitlement. Resolved with a fallback artifact."""
    pass


class FetchTimeoutError(FetchError):
    """Call exceeded its wall-clock budget. Resolved with a fallback artifact."""
    pass


class OrchestratorFatalError(Exception):
    """Checkpoint or job storage failed. Aborts the current job only."""
    pass


class JobValidationError(ValueError):
    """Job request rejected before creation."""
    pass


class StoreError(Exception):
    """A key-value backend could not persist its contents."""
    pass


__all__ = [
    "FetchError",
    "RateLimitedError",
    "TransientFetchError",
    "AccessDeniedError",
    "FetchTimeoutError",
    "OrchestratorFatalError",
    "JobValidationError",
    "StoreError",
]
