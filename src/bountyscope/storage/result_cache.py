"""
Result Cache - Final matches of completed scans with staleness expiry.

Stale entries are not deleted; they are ignored on read and overwritten
by the next completed scan with the same fingerprint.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, computed_field

from ..models import Match
from .base import JsonRecordStore, PersistenceError


class CachedResult(BaseModel):
    """Final matches of one completed scan"""
    fingerprint: str
    results: List[Match] = Field(default_factory=list)
    cached_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field
    @property
    def total_results(self) -> int:
        return len(self.results)

    def age(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        cached_at = self.cached_at
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        return now - cached_at


class ResultCache(JsonRecordStore[CachedResult]):
    """File-backed cache of completed scan results"""

    suffix = "results"
    record_type = CachedResult

    def __init__(self, cache_dir: Path, max_age: timedelta = timedelta(hours=24)):
        """
        Initialize the cache.

        Args:
            cache_dir: Directory holding the result files
            max_age: Entries at least this old are treated as absent
        """
        super().__init__(cache_dir)
        self.max_age = max_age

    def load(self, fingerprint: str) -> Optional[CachedResult]:
        """
        Return the cached result if present and fresh.

        Returns:
            The cached entry, or None when absent, stale or unreadable
        """
        try:
            entry = self.read(fingerprint)
        except PersistenceError as e:
            self.logger.warning("cached_results_load_failed", fingerprint=fingerprint, error=str(e))
            return None

        if entry is None:
            return None

        age = entry.age()
        if age >= self.max_age:
            self.logger.info(
                "cached_results_stale",
                fingerprint=fingerprint,
                age_hours=round(age.total_seconds() / 3600, 1),
            )
            return None

        self.logger.info(
            "cached_results_used",
            fingerprint=fingerprint,
            cached_at=entry.cached_at.isoformat(),
            results=entry.total_results,
        )
        return entry

    def store(
        self,
        fingerprint: str,
        results: Sequence[Match],
        cached_at: Optional[datetime] = None,
    ) -> Optional[CachedResult]:
        """
        Commit final results.

        Returns:
            The written entry, or None if the write failed
        """
        entry = CachedResult(fingerprint=fingerprint, results=list(results))
        if cached_at is not None:
            entry = entry.model_copy(update={"cached_at": cached_at})

        try:
            self.write(fingerprint, entry)
        except PersistenceError as e:
            self.logger.warning("cache_results_failed", fingerprint=fingerprint, error=str(e))
            return None

        self.logger.debug("results_cached", fingerprint=fingerprint, results=entry.total_results)
        return entry
