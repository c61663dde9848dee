import threading
from typing import Dict
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)


class JobLockManager:
    """
    Per-job locks guarding import execution within this process.

    Acquisition never blocks: a second caller for the same job gets ``False``
    from ``try_acquire`` instead of waiting, so an execute request racing an
    in-flight one is rejected rather than queued.
    """
    _locks: Dict[str, threading.Lock] = {}
    _global_lock = threading.Lock()

    @classmethod
    def get_lock(cls, job_id: str) -> threading.Lock:
        """Get or create a lock for a specific job."""
        with cls._global_lock:
            if job_id not in cls._locks:
                cls._locks[job_id] = threading.Lock()
            return cls._locks[job_id]

    @classmethod
    def discard(cls, job_id: str) -> None:
        with cls._global_lock:
            cls._locks.pop(job_id, None)

    @classmethod
    @contextmanager
    def try_acquire(cls, job_id: str):
        """Yield True while holding the job lock, or False if another caller holds it."""
        lock = cls.get_lock(job_id)
        acquired = lock.acquire(blocking=False)
        if not acquired:
            logger.warning("Import job '%s' is already locked by another request", job_id)
            yield False
            return
        logger.debug("Acquired lock for import job '%s'", job_id)
        try:
            yield True
        finally:
            lock.release()
            logger.debug("Released lock for import job '%s'", job_id)
