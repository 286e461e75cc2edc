# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for job control and progress polling
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the bulk acquisition orchestrator.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from core.contracts import JobStatus
from core.errors import JobValidationError
from .schemas import (
    CacheStatsResponse,
    ControlResponse,
    ErrorResponse,
    JobAccepted,
    JobCreate,
    JobDetailResponse,
    JobListResponse,
    JobResponse,
    OrchestratorStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_job_service = None
_orchestrator = None
_cache = None


def set_services(job_service, orchestrator, cache=None):
    """Set service instances for dependency injection."""
    global _job_service, _orchestrator, _cache
    _job_service = job_service
    _orchestrator = orchestrator
    _cache = cache


def get_job_service():
    if _job_service is None:
        raise HTTPException(500, "Services not initialized")
    return _job_service


def get_orchestrator():
    if _orchestrator is None:
        raise HTTPException(500, "Orchestrator not initialized")
    return _orchestrator


def get_cache():
    if _cache is None:
        raise HTTPException(500, "Artifact cache not initialized")
    return _cache


# ============================================================================
# ORCHESTRATOR STATUS
# ============================================================================

@router.get("/orchestrator/status", response_model=OrchestratorStatusResponse, tags=["Orchestrator"])
async def get_orchestrator_status():
    """
    Get orchestrator status and statistics.

    Returns the running job, the ready queue and batch counters.
    """
    orchestrator = get_orchestrator()
    stats = orchestrator.stats()

    return OrchestratorStatusResponse(
        status="running" if stats["accepting"] else "stopped",
        running_job_id=orchestrator.running_job_id,
        queued_job_ids=orchestrator.queued_job_ids,
        metrics=stats,
    )


@router.get("/cache/stats", response_model=CacheStatsResponse, tags=["Cache"])
async def get_cache_stats():
    """Artifact cache size and hit counters."""
    return CacheStatsResponse(**get_cache().stats())


# ============================================================================
# JOBS
# ============================================================================

@router.post(
    "/jobs",
    response_model=JobAccepted,
    status_code=202,
    tags=["Jobs"],
    responses={
        202: {"description": "Job accepted and queued"},
        400: {"model": ErrorResponse, "description": "Invalid request"},
    },
)
async def create_job(request: JobCreate):
    """
    Create a new job.

    Returns immediately with the job ID.
    Poll GET /jobs/{job_id}/progress to monitor progress.
    """
    orchestrator = get_orchestrator()

    try:
        job = await orchestrator.submit(
            request.to_request(),
            idempotency_key=request.idempotency_key,
        )
    except JobValidationError as e:
        raise HTTPException(400, str(e))

    logger.info(f"Accepted job {job.job_id} with {len(job.items)} items")
    return JobAccepted(job_id=job.job_id, status=job.status)


@router.get("/jobs", response_model=JobListResponse, tags=["Jobs"])
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
):
    """
    List jobs, newest first.

    Optionally filter by status.
    """
    service = get_job_service()

    if status:
        jobs = await service.job_repo.list_by_status(status)
        jobs = list(reversed(jobs))[:limit]
    else:
        jobs = await service.list_jobs(limit)

    return JobListResponse(
        jobs=[JobResponse.from_job(j) for j in jobs],
        total=len(jobs),
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobDetailResponse,
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}},
)
async def get_job(job_id: str):
    """
    Get job details with the per-item result log.
    """
    service = get_job_service()
    job = await service.get_job(job_id)

    if job is None:
        raise HTTPException(404, f"Job not found: {job_id}")

    # Calculate result summary
    result_summary = {}
    for outcome in job.results:
        status = outcome.status.value
        result_summary[status] = result_summary.get(status, 0) + 1

    return JobDetailResponse(
        job=JobResponse.from_job(job),
        results=job.results,
        result_summary=result_summary,
    )


@router.get(
    "/jobs/{job_id}/progress",
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}},
)
async def get_job_progress(job_id: str):
    """
    Poll a job's progress.

    Counters move at batch boundaries; currently_processing_item is live.
    """
    snapshot = await get_orchestrator().get_progress(job_id)
    if snapshot is None:
        raise HTTPException(404, f"Job not found: {job_id}")
    return JSONResponse(content=snapshot.model_dump(mode="json"))


# ============================================================================
# CONTROL
# ============================================================================

async def _control(job_id: str, action: str) -> ControlResponse:
    orchestrator = get_orchestrator()
    success = await getattr(orchestrator, action)(job_id)

    job = await get_job_service().get_job(job_id)
    if job is None:
        raise HTTPException(404, f"Job not found: {job_id}")
    if not success:
        raise HTTPException(409, f"Cannot {action} job in status: {job.status.value}")

    return ControlResponse(job_id=job_id, success=True, status=job.status)


@router.post(
    "/jobs/{job_id}/pause",
    response_model=ControlResponse,
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def pause_job(job_id: str):
    """Pause a running job at its next batch boundary."""
    return await _control(job_id, "pause")


@router.post(
    "/jobs/{job_id}/resume",
    response_model=ControlResponse,
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resume_job(job_id: str):
    """Resume a paused job ahead of other queued jobs."""
    return await _control(job_id, "resume")


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=ControlResponse,
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_job(job_id: str):
    """Cancel a pending, running or paused job."""
    return await _control(job_id, "cancel")
