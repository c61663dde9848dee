"""
Persistent tracking for client import jobs.

A job moves queued -> previewed -> executing -> completed | failed. The
transition into ``executing`` is a conditional update so that only one
execute request can ever claim a previewed job.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, insert, select, update

from advisor_crm.api.schemas.imports import (
    ColumnMapping,
    DuplicateStrategy,
    ImportJobStatus,
    ImportResult,
)
from advisor_crm.db.session import get_engine
from advisor_crm.db.tables import ensure_tables, import_jobs

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_job(row: Any) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "filename": row["filename"],
        "status": ImportJobStatus(row["status"]),
        "total_rows": row["total_rows"],
        "success_count": row["success_count"],
        "error_count": row["error_count"],
        "skipped_count": row["skipped_count"],
        "duplicate_strategy": row["duplicate_strategy"],
        "mappings": row["mappings"] or [],
        "errors": row["errors"] or [],
        "error_message": row["error_message"],
        "uploaded_at": row["created_at"],
        "updated_at": row["updated_at"],
        "started_at": row["started_at"],
        "completed_at": row["completed_at"],
    }


def _fetch_job(conn, job_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(select(import_jobs).where(import_jobs.c.id == job_id)).mappings().first()
    return _row_to_job(row) if row else None


def create_import_job(
    *,
    filename: str,
    total_rows: int,
    status: ImportJobStatus = ImportJobStatus.QUEUED,
) -> Dict[str, Any]:
    """Create and persist a new import job for an uploaded file."""
    ensure_tables()
    engine = get_engine()
    job_id = str(uuid.uuid4())
    now = _utcnow()

    with engine.begin() as conn:
        conn.execute(
            insert(import_jobs).values(
                id=job_id,
                filename=filename,
                status=status.value,
                total_rows=total_rows,
                success_count=0,
                error_count=0,
                skipped_count=0,
                created_at=now,
                updated_at=now,
            )
        )
        job = _fetch_job(conn, job_id)

    logger.info("Created import job %s for '%s' (%d rows)", job_id, filename, total_rows)
    return job


def update_import_job(
    job_id: str,
    *,
    status: Optional[ImportJobStatus] = None,
    error_message: Optional[str] = None,
    expected_status: Optional[ImportJobStatus] = None,
) -> Optional[Dict[str, Any]]:
    """
    Update an existing import job.

    When ``expected_status`` is given the update only applies if the job is
    currently in that status; None is returned otherwise.
    """
    ensure_tables()
    engine = get_engine()

    values: Dict[str, Any] = {"updated_at": _utcnow()}
    if status is not None:
        values["status"] = status.value
    if error_message is not None:
        values["error_message"] = error_message

    statement = update(import_jobs).where(import_jobs.c.id == job_id)
    if expected_status is not None:
        statement = statement.where(import_jobs.c.status == expected_status.value)

    with engine.begin() as conn:
        result = conn.execute(statement.values(**values))
        if result.rowcount == 0:
            return None
        return _fetch_job(conn, job_id)


def claim_import_job(
    job_id: str,
    *,
    duplicate_strategy: DuplicateStrategy,
    mappings: Iterable[ColumnMapping],
) -> bool:
    """
    Move a previewed job into ``executing``.

    Returns False when the job is not (or no longer) previewed, e.g. because a
    concurrent request claimed it first.
    """
    ensure_tables()
    engine = get_engine()
    now = _utcnow()

    with engine.begin() as conn:
        result = conn.execute(
            update(import_jobs)
            .where(import_jobs.c.id == job_id)
            .where(import_jobs.c.status == ImportJobStatus.PREVIEWED.value)
            .values(
                status=ImportJobStatus.EXECUTING.value,
                duplicate_strategy=duplicate_strategy.value,
                mappings=[m.model_dump(mode="json") for m in mappings],
                started_at=now,
                updated_at=now,
            )
        )
        claimed = result.rowcount == 1

    if claimed:
        logger.info("Import job %s claimed for execution (strategy=%s)", job_id, duplicate_strategy.value)
    return claimed


def complete_import_job(
    job_id: str,
    result: ImportResult,
    *,
    errors: List[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Persist final counts and the full error list, and mark the job completed."""
    ensure_tables()
    engine = get_engine()
    now = _utcnow()

    with engine.begin() as conn:
        conn.execute(
            update(import_jobs)
            .where(import_jobs.c.id == job_id)
            .values(
                status=ImportJobStatus.COMPLETED.value,
                success_count=result.success_count,
                error_count=result.error_count,
                skipped_count=result.skipped_count,
                errors=errors,
                updated_at=now,
                completed_at=now,
            )
        )
        job = _fetch_job(conn, job_id)

    logger.info(
        "Import job %s completed: %d succeeded, %d skipped, %d errors",
        job_id,
        result.success_count,
        result.skipped_count,
        result.error_count,
    )
    return job


def fail_import_job(
    job_id: str,
    error_message: str,
    *,
    result: Optional[ImportResult] = None,
    errors: Optional[List[Dict[str, Any]]] = None,
) -> Optional[Dict[str, Any]]:
    """Mark a job failed, keeping whatever partial counts are known."""
    ensure_tables()
    engine = get_engine()
    now = _utcnow()

    values: Dict[str, Any] = {
        "status": ImportJobStatus.FAILED.value,
        "error_message": error_message,
        "updated_at": now,
        "completed_at": now,
    }
    if result is not None:
        values.update(
            success_count=result.success_count,
            error_count=result.error_count,
            skipped_count=result.skipped_count,
        )
    if errors is not None:
        values["errors"] = errors

    with engine.begin() as conn:
        conn.execute(update(import_jobs).where(import_jobs.c.id == job_id).values(**values))
        job = _fetch_job(conn, job_id)

    logger.warning("Import job %s failed: %s", job_id, error_message)
    return job


_EXPIRED_MESSAGE = "Import data expired before execution. Please upload the file again."
_UNEXECUTED_STATUSES = [ImportJobStatus.QUEUED.value, ImportJobStatus.PREVIEWED.value]


def _expire_where(condition) -> int:
    ensure_tables()
    engine = get_engine()
    now = _utcnow()
    with engine.begin() as conn:
        result = conn.execute(
            update(import_jobs)
            .where(condition)
            .where(import_jobs.c.status.in_(_UNEXECUTED_STATUSES))
            .values(
                status=ImportJobStatus.FAILED.value,
                error_message=_EXPIRED_MESSAGE,
                updated_at=now,
                completed_at=now,
            )
        )
        expired = result.rowcount
    if expired:
        logger.info("Marked %d abandoned import job(s) as failed", expired)
    return expired


def expire_import_jobs(job_ids: Iterable[str]) -> int:
    """Fail jobs whose staged rows expired before they were executed."""
    job_ids = list(job_ids)
    if not job_ids:
        return 0
    return _expire_where(import_jobs.c.id.in_(job_ids))


def expire_stale_import_jobs(max_age_seconds: int) -> int:
    """Fail queued/previewed jobs uploaded more than ``max_age_seconds`` ago."""
    cutoff = _utcnow() - timedelta(seconds=max_age_seconds)
    return _expire_where(import_jobs.c.created_at < cutoff)


def get_import_job(
job_id: str) -> Optional[Dict[str, Any]]:
    """Fetch a single job by ID."""
    ensure_tables()
    engine = get_engine()
    with engine.connect() as conn:
        return _fetch_job(conn, job_id)


def list_import_jobs(*, limit: int = 20, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
    """List jobs, newest first."""
    ensure_tables()
    engine = get_engine()

    query = (
        select(import_jobs)
        .order_by(import_jobs.c.created_at.desc(), import_jobs.c.id.desc())
        .limit(limit)
        .offset(offset)
    )
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
        total = conn.execute(select(func.count()).select_from(import_jobs)).scalar() or 0
    return [_row_to_job(row) for row in rows], total
