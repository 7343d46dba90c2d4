"""
Storage module - Durable scan state.

- ProgressStore: resume checkpoints of partially completed scans
- ResultCache: final results of completed scans, with staleness expiry
"""

from .base import JsonRecordStore, PersistenceError
from .progress_store import ProgressRecord, ProgressStore
from .result_cache import CachedResult, ResultCache


__all__ = [
    # Stores
    "JsonRecordStore",
    "ProgressStore",
    "ResultCache",
    # Records
    "ProgressRecord",
    "CachedResult",
    # Exceptions
    "PersistenceError",
]
