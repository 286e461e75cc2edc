# ============================================================================
# BULK ACQUISITION ORCHESTRATOR - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application with the orchestration loop
# CREATED: 18 OCT 2026
# ============================================================================
"""
Bulk Acquisition Orchestrator Main Application

FastAPI application that:
1. Provides HTTP API for job control and progress polling
2. Runs the orchestration loop in the background
3. Optionally writes fetched artifacts to PostgreSQL

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE, EPOCH, CODENAME
from core.config import get_defaults
from repositories.artifact_sink import PostgresArtifactSink
from repositories.database import init_pool, close_pool, is_database_configured
from orchestrator.factory import Components, build_components
from api.routes import router, set_services

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger, ComponentType

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__, ComponentType.API)

# Global instances
_components: Components = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup, cleans up on shutdown.
    """
    global _components

    logger.info(f"Starting {CODENAME} v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")
    defaults = get_defaults()

    # Optional relational sink
    sink = None
    if is_database_configured():
        pool = await init_pool(
            min_size=defaults.database.min_pool_size,
            max_size=defaults.database.max_pool_size,
            connection_string=defaults.database.database_url,
        )
        sink = PostgresArtifactSink(pool)
        await sink.ensure_schema()
        logger.info("Artifact sink enabled")
    else:
        logger.info("No database configured, artifact sink disabled")

    _components = build_components(defaults, sink=sink)

    # Tolerant load of cache, jobs and checkpoints
    await _components.load()
    logger.info(f"Artifact cache ready ({len(_components.cache)} entries)")

    # Set services for API routes
    set_services(
        job_service=_components.job_service,
        orchestrator=_components.orchestrator,
        cache=_components.cache,
    )

    # Start orchestrator (recovers interrupted jobs)
    await _components.orchestrator.start()
    logger.info("Orchestrator started")

    yield

    # Shutdown
    logger.info(f"Shutting down {CODENAME}...")

    await _components.close()
    await close_pool()

    logger.info(f"{CODENAME} stopped")


# Create FastAPI app
app = FastAPI(
    title=CODENAME,
    description="Throttled, resumable bulk acquisition of per-item documents",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": CODENAME,
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
