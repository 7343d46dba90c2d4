"""
Progress Store - Resume state of a partially completed scan.

A progress file is created on the first checkpoint of a scan, rewritten
on every later checkpoint, and deleted once the scan completes and its
results are committed to the result cache.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, computed_field

from ..models import Match
from .base import JsonRecordStore, PersistenceError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressRecord(BaseModel):
    """Completed unit keys plus the matches accumulated so far"""
    fingerprint: str
    completed_units: List[str] = Field(default_factory=list)
    results: List[Match] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)

    @computed_field
    @property
    def total_results(self) -> int:
        return len(self.results)


class ProgressStore(JsonRecordStore[ProgressRecord]):
    """
    File-backed progress checkpoints keyed by scan fingerprint.

    Example:
        >>> store = ProgressStore(Path("data/search_cache"))
        >>> record = store.load(fingerprint)
        >>> store.save(fingerprint, ["aave/aave-v3-core"], matches)
    """

    suffix = "progress"
    record_type = ProgressRecord

    def __init__(self, cache_dir: Path):
        super().__init__(cache_dir)
        self.write_count = 0

    def load(self, fingerprint: str) -> ProgressRecord:
        """
        Load resume state; an empty record if none can be read.
        """
        try:
            record = self.read(fingerprint)
        except PersistenceError as e:
            self.logger.warning("progress_load_failed", fingerprint=fingerprint, error=str(e))
            record = None

        if record is None:
            return ProgressRecord(fingerprint=fingerprint)

        self.logger.info(
            "progress_loaded",
            fingerprint=fingerprint,
            completed=len(record.completed_units),
            results=record.total_results,
        )
        return record

    def save(
        self,
        fingerprint: str,
        completed_units: Sequence[str],
        results: Sequence[Match],
    ) -> Optional[ProgressRecord]:
        """
        Checkpoint current progress.

        Returns:
            The written record, or None if the write failed
        """
        record = ProgressRecord(
            fingerprint=fingerprint,
            completed_units=list(completed_units),
            results=list(results),
        )

        try:
            self.write(fingerprint, record)
        except PersistenceError as e:
            self.logger.warning("progress_save_failed", fingerprint=fingerprint, error=str(e))
            return None

        self.write_count += 1
        self.logger.debug(
            "progress_saved",
            fingerprint=fingerprint,
            completed=len(record.completed_units),
            results=record.total_results,
        )
        return record

    def delete(self, fingerprint: str) -> bool:
        """Discard resume state; False if the file could not be removed"""
        try:
            self.remove(fingerprint)
        except PersistenceError as e:
            self.logger.warning("progress_cleanup_failed", fingerprint=fingerprint, error=str(e))
            return False
        return True
