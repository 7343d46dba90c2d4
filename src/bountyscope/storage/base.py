"""
JSON record store - one file per scan fingerprint.

Subclasses pick a file suffix and a pydantic record type. Reads and
writes raise PersistenceError; the public methods of subclasses catch
it and degrade to "no prior state" / best-effort writes.
"""

import os
import tempfile
from pathlib import Path
from typing import Generic, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError


class PersistenceError(Exception):
    """Raised when a record file cannot be read or written"""
    pass


R = TypeVar("R", bound=BaseModel)


class JsonRecordStore(Generic[R]):
    """Durable key/value store of pydantic records keyed by fingerprint"""

    suffix: str = "record"
    record_type: Type[R]

    def __init__(self, cache_dir: Path):
        """
        Initialize the store.

        Args:
            cache_dir: Directory holding the record files (created if missing)
        """
        self.cache_dir = Path(cache_dir)
        self.logger = structlog.get_logger(__name__, store=self.suffix)

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.warning("cache_dir_unavailable", path=str(self.cache_dir), error=str(e))

    def path_for(self, fingerprint: str) -> Path:
        return self.cache_dir / f"{fingerprint}_{self.suffix}.json"

    def exists(self, fingerprint: str) -> bool:
        return self.path_for(fingerprint).exists()

    def read(self, fingerprint: str) -> Optional[R]:
        """
        Read the record for a fingerprint.

        Returns:
            The record, or None if no file exists

        Raises:
            PersistenceError: If the file is unreadable or malformed
        """
        path = self.path_for(fingerprint)
        if not path.exists():
            return None

        try:
            raw = path.read_text(encoding="utf-8")
            return self.record_type.model_validate_json(raw)
        except (OSError, ValidationError, ValueError) as e:
            raise PersistenceError(f"Could not read {path.name}: {e}") from e

    def write(self, fingerprint: str, record: R):
        """
        Replace the record for a fingerprint atomically.

        Raises:
            PersistenceError: If the file cannot be written
        """
        path = self.path_for(fingerprint)
        tmp_name = None

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.cache_dir,
                prefix=f".{fingerprint}_",
                suffix=".tmp",
                delete=False,
            ) as tmp_file:
                tmp_name = tmp_file.name
                tmp_file.write(record.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Could not write {path.name}: {e}") from e

    def remove(self, fingerprint: str):
        """
        Delete the record for a fingerprint if present.

        Raises:
            PersistenceError: If the file exists but cannot be deleted
        """
        path = self.path_for(fingerprint)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not delete {path.name}: {e}") from e
