"""
In-memory staging of parsed rows between upload-preview and execute.

Rows are keyed by import job id and expire after a TTL so abandoned uploads
don't pin memory. Execute releases a job's rows once it finishes.
"""
import threading
import time
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from advisor_crm.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class StagedRows:
    headers: List[str]
    rows: List[List[str]]
    staged_at: float = field(default_factory=time.time)


class RowStagingCache:
    """Thread-safe TTL cache of parsed rows per import job."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._entries: Dict[str, StagedRows] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        if self._ttl_seconds is not None:
            return self._ttl_seconds
        return settings.import_row_cache_ttl_seconds

    def _is_expired(self, entry: StagedRows, now: float) -> bool:
        return now - entry.staged_at > self.ttl_seconds

    def put(self, job_id: str, headers: List[str], rows: List[List[str]]) -> None:
        with self._lock:
            self._entries[job_id] = StagedRows(headers=list(headers), rows=rows)
        logger.debug("Staged %d rows for import job %s", len(rows), job_id)

    def get(self, job_id: str) -> Optional[StagedRows]:
        """Return the staged rows for ``job_id``, or None if missing or expired."""
        now = time.time()
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[job_id]
                logger.info("Staged rows for import job %s expired", job_id)
                return None
            return entry

    def release(self, job_id: str) -> None:
        with self._lock:
            if self._entries.pop(job_id, None) is not None:
                logger.debug("Released staged rows for import job %s", job_id)

    def pop_expired(self) -> List[str]:
        """Drop expired entries and return the job ids they belonged to."""
        now = time.time()
        with self._lock:
            expired = [job_id for job_id, entry in self._entries.items() if self._is_expired(entry, now)]
            for job_id in expired:
                del self._entries[job_id]
        if expired:
            logger.info("Expired staged rows for %d abandoned import job(s)", len(expired))
        return expired

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, job_id: str) -> bool:
        return self.get(job_id) is not None


staged_rows = RowStagingCache()
