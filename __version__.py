# ============================================================================
# VERSION - BULK ACQUISITION ORCHESTRATOR
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# ============================================================================
"""
Version information for the Bulk Acquisition Orchestrator.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch.build
# Criteria for 0.2 - pause/resume survives a restart
__version__ = "0.1.0.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-18"

EPOCH = 1
CODENAME = "Bulk Acquisition Orchestrator"
