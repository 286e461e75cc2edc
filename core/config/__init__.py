# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the bulk acquisition
orchestrator.
"""

from core.config.defaults import (
    DEMO_API_KEY,
    CacheLayout,
    OrchestratorDefaults,
    RetryDefaults,
    FetchDefaults,
    StorageDefaults,
    DatabaseDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "DEMO_API_KEY",
    "CacheLayout",
    "OrchestratorDefaults",
    "RetryDefaults",
    "FetchDefaults",
    "StorageDefaults",
    "DatabaseDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
