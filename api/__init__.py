# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for job control and progress polling
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the bulk acquisition orchestrator.
"""

from .routes import router, set_services
from .schemas import (
    JobCreate,
    JobAccepted,
    JobResponse,
    ControlResponse,
)

__all__ = [
    "router",
    "set_services",
    "JobCreate",
    "JobAccepted",
    "JobResponse",
    "ControlResponse",
]
