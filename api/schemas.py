# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the job control surface.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import JobStatus
from core.models import ItemOutcome, Job, JobProgress, JobRequest, Period


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class JobCreate(JobRequest):
    """Request to create a new bulk acquisition job."""
    idempotency_key: Optional[str] = Field(
        None,
        max_length=128,
        description="Optional key for idempotent job creation"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": ["AAPL", "MSFT", "GOOGL"],
                    "horizon": 4,
                    "force_refresh": False,
                },
                {
                    "items": ["NVDA"],
                    "periods": ["2025-Q2", "2025-Q1"],
                },
            ]
        }
    }

    def to_request(self) -> JobRequest:
        return JobRequest(
            items=self.items,
            periods=self.periods,
            horizon=self.horizon,
            force_refresh=self.force_refresh,
        )


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class JobAccepted(BaseModel):
    """Immediate response to job creation."""
    job_id: str
    status: JobStatus


class JobResponse(BaseModel):
    """Job response."""
    job_id: str
    status: JobStatus
    items: List[str]
    periods: Optional[List[Period]] = None
    horizon: int
    force_refresh: bool = False
    progress: JobProgress
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            job_id=job.job_id,
            status=job.status,
            items=job.items,
            periods=job.periods,
            horizon=job.horizon,
            force_refresh=job.force_refresh,
            progress=job.progress,
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            duration_seconds=job.duration_seconds,
        )


class JobDetailResponse(BaseModel):
    """Detailed job response with the per-item result log."""
    job: JobResponse
    results: List[ItemOutcome]
    result_summary: Dict[str, int] = {}


class JobListResponse(BaseModel):
    """List of jobs response."""
    jobs: List[JobResponse]
    total: int


class ControlResponse(BaseModel):
    """Outcome of a pause / resume / cancel request."""
    job_id: str
    success: bool
    status: Optional[JobStatus] = None


class CacheStatsResponse(BaseModel):
    """Artifact cache statistics."""
    entries: int
    hits: int
    misses: int
    writes: int
    dirty: bool


class OrchestratorStatusResponse(BaseModel):
    """Orchestrator state and counters."""
    status: str
    running_job_id: Optional[str] = None
    queued_job_ids: List[str] = []
    metrics: Dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
    job_id: Optional[str] = None
