"""
Core module - Configuration, pacing and scan orchestration.

This package contains the components that drive a resumable scan.
"""

from .config import ConfigError, SearchSettings
from .rate_limiter import DelayKind, RateBudget
from .fingerprint import build_search_query, scan_fingerprint
from .orchestrator import ScanOrchestrator, ScanResult, ScanState, order_units


__all__ = [
    # Configuration
    "SearchSettings",
    "ConfigError",
    # Rate limiting
    "RateBudget",
    "DelayKind",
    # Scan parameters
    "scan_fingerprint",
    "build_search_query",
    # Orchestration
    "ScanOrchestrator",
    "ScanResult",
    "ScanState",
    "order_units",
]
