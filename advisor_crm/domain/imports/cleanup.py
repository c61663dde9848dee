"""
Maintenance helpers for data created by bulk imports.

Clients created by an import carry ``source='import'`` and the id of the job
that created them, which is what separates them from manually entered
clients here.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select

from advisor_crm.api.schemas.imports import TERMINAL_JOB_STATUSES
from advisor_crm.db.clients import SOURCE_IMPORT
from advisor_crm.db.session import get_engine
from advisor_crm.db.tables import client_emails, client_phones, clients, ensure_tables, import_jobs

logger = logging.getLogger(__name__)


def _imported_clients_filter(import_job_id: Optional[str]):
    condition = clients.c.source == SOURCE_IMPORT
    if import_job_id:
        condition = condition & (clients.c.created_by_import_job_id == import_job_id)
    return condition


def _finished_jobs_filter(import_job_id: Optional[str]):
    condition = import_jobs.c.status.in_([status.value for status in TERMINAL_JOB_STATUSES])
    if import_job_id:
        condition = condition & (import_jobs.c.id == import_job_id)
    return condition


def summarize_imported_clients(import_job_id: Optional[str] = None) -> Dict[str, Any]:
    """Count clients created by imports, overall and per job."""
    ensure_tables()
    engine = get_engine()
    condition = _imported_clients_filter(import_job_id)

    with engine.connect() as conn:
        total = conn.execute(select(func.count()).select_from(clients).where(condition)).scalar() or 0
        per_job = conn.execute(
            select(clients.c.created_by_import_job_id, func.count())
            .where(condition)
            .group_by(clients.c.created_by_import_job_id)
        ).all()
        updated_manual = conn.execute(
            select(func.count())
            .select_from(clients)
            .where(clients.c.source != SOURCE_IMPORT)
            .where(clients.c.import_count > 0)
        ).scalar() or 0

    return {
        "imported_clients": total,
        "by_job": {job_id: count for job_id, count in per_job},
        "manual_clients_updated_by_import": updated_manual,
    }


def purge_imported_clients(
    *,
    import_job_id: Optional[str] = None,
    clear_jobs: bool = False,
    dry_run: bool = True,
) -> Dict[str, Any]:
    """
    Delete clients created by imports (optionally only those from one job).

    Manually entered clients are never deleted, even if an import later
    updated them. With ``clear_jobs`` finished import jobs are removed too.
    Nothing is changed when ``dry_run`` is set; the counts are still returned.
    """
    ensure_tables()
    engine = get_engine()
    condition = _imported_clients_filter(import_job_id)

    with engine.begin() as conn:
        client_ids: List[str] = list(conn.execute(select(clients.c.id).where(condition)).scalars())
        job_count = 0
        if clear_jobs:
            job_count = conn.execute(
                select(func.count()).select_from(import_jobs).where(_finished_jobs_filter(import_job_id))
            ).scalar() or 0

        if not dry_run:
            if client_ids:
                # Children first; SQLite does not enforce ON DELETE CASCADE by default
                conn.execute(delete(client_emails).where(client_emails.c.client_id.in_(client_ids)))
                conn.execute(delete(client_phones).where(client_phones.c.client_id.in_(client_ids)))
                conn.execute(delete(clients).where(clients.c.id.in_(client_ids)))
            if clear_jobs:
                conn.execute(delete(import_jobs).where(_finished_jobs_filter(import_job_id)))

    logger.info(
        "%s %d imported client(s) and %d import job(s)",
        "Would delete" if dry_run else "Deleted",
        len(client_ids),
        job_count,
    )
    return {"clients_deleted": len(client_ids), "jobs_deleted": job_count, "dry_run": dry_run}
