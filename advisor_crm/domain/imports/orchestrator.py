"""
Client import orchestration: upload-preview and execute.

Upload parses the file, records a job and stages the parsed rows. Execute
validates the chosen mapping, claims the job, then runs every staged row
through transform -> duplicate resolution -> create/update/skip. A failing row
is recorded and counted; it never stops the rest of the batch.
"""
import itertools
import logging
import re
import time
from typing import Callable, Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from advisor_crm.api.schemas.imports import (
    ColumnMapping,
    DuplicateStrategy,
    ImportJobStatus,
    ImportPreview,
    ImportResult,
    TargetField,
)
from advisor_crm.core.config import settings
from advisor_crm.db.clients import ClientFields, ClientRepository, format_client_id
from advisor_crm.utils.locks import JobLockManager
from .duplicates import DuplicateAction, resolve_duplicate
from .errors import (
    ImportExecutionError,
    ImportJobBusyError,
    ImportJobNotFoundError,
    ImportStorageError,
    ImportTimeoutError,
)
from .jobs import (
    claim_import_job,
    complete_import_job,
    create_import_job,
    expire_import_jobs,
    expire_stale_import_jobs,
    fail_import_job,
    get_import_job,
    update_import_job,
)
from .mapper import FieldSource, build_field_sources, extract_mapped_row, propose_mapping, validate_mappings
from .processors.tabular_processor import parse_tabular_file
from .results import RowOutcome, error_details, summarize_outcomes
from .staging import StagedRows, staged_rows

logger = logging.getLogger(__name__)

EMAIL_FIELDS = (
    (TargetField.HOME_EMAIL, "HOME"),
    (TargetField.HOME_EMAIL_2, "HOME2"),
    (TargetField.WORK_EMAIL, "WORK"),
    (TargetField.PERSONAL_EMAIL, "PERSONAL"),
    (TargetField.OTHER_EMAIL, "OTHER"),
)
PHONE_FIELDS = (
    (TargetField.HOME_PHONE, "HOME"),
    (TargetField.WORK_PHONE, "WORK"),
    (TargetField.CELLULAR_PHONE, "CELLULAR"),
    (TargetField.OTHER_PHONE, "OTHER"),
)
_TAG_SEPARATORS = re.compile(r"[,;]")


# ---------------------------------------------------------------- upload

def _expire_quietly(job_ids: List[str]) -> None:
    try:
        expire_import_jobs(job_ids)
    except SQLAlchemyError:
        logger.exception("Could not mark %d abandoned import job(s) as failed", len(job_ids))


def _expire_abandoned_jobs() -> None:
    """
    Fail jobs nobody executed in time: those whose staged rows expired in
    this process, and previewed/queued jobs older than the row TTL (their
    rows are gone after a restart).
    """
    expired = staged_rows.pop_expired()
    if expired:
        _expire_quietly(expired)
    try:
        expire_stale_import_jobs(settings.import_row_cache_ttl_seconds)
    except SQLAlchemyError:
        logger.exception("Could not sweep stale import jobs")


def preview_import_file(file_content: bytes, filename: str) -> ImportPreview:
    """
    Parse an uploaded file, create its import job and stage the rows for execute.

    Nothing is written to clients here. Upload errors are raised before a job
    exists.
    """
    parsed = parse_tabular_file(file_content, filename)
    _expire_abandoned_jobs()

    job_id = None
    try:
        job = create_import_job(filename=filename, total_rows=parsed.total_rows)
        job_id = job["id"]
        staged_rows.put(job_id, parsed.headers, parsed.rows)
        update_import_job(job_id, status=ImportJobStatus.PREVIEWED, expected_status=ImportJobStatus.QUEUED)
    except SQLAlchemyError as exc:
        logger.exception("Failed to record import job for '%s'", filename)
        if job_id:
            staged_rows.release(job_id)
        raise ImportStorageError("Could not record the import job. Please try again.") from exc

    logger.info("Import job %s previewed: %d rows, headers=%s", job_id, parsed.total_rows, parsed.headers)
    return ImportPreview(
        job_id=job_id,
        headers=parsed.headers,
        sample_rows=parsed.sample(settings.import_sample_rows),
        total_rows=parsed.total_rows,
        suggested_mappings=propose_mapping(parsed.headers),
    )


# --------------------------------------------------------------- execute

def build_client_fields(mapped_row: Dict[TargetField, str]) -> ClientFields:
    """Turn a transformed row into the values written to the client store."""
    tags_value = mapped_row.get(TargetField.TAGS, "")
    return ClientFields(
        name=mapped_row.get(TargetField.NAME, "").strip() or None,
        client_id=mapped_row.get(TargetField.CLIENT_ID) or None,
        status=mapped_row.get(TargetField.STATUS) or None,
        tags=[tag.strip() for tag in _TAG_SEPARATORS.split(tags_value) if tag.strip()],
        emails={kind: mapped_row[f] for f, kind in EMAIL_FIELDS if mapped_row.get(f)},
        phones={kind: mapped_row[f] for f, kind in PHONE_FIELDS if mapped_row.get(f)},
    )


def _describe_row_error(exc: Exception) -> str:
    if isinstance(exc, IntegrityError):
        return f"Could not save client: {getattr(exc, 'orig', exc)}"
    if isinstance(exc, SQLAlchemyError):
        return "Could not save client: database error"
    return str(exc) or exc.__class__.__name__


def process_row(
    row_number: int,
    row: Sequence[str],
    sources: Dict[TargetField, FieldSource],
    strategy: DuplicateStrategy,
    client_store,
    *,
    job_id: Optional[str],
    allocate_client_id: Callable[[], str],
) -> RowOutcome:
    """Import one data row and classify what happened to it. Never raises."""
    try:
        mapped = extract_mapped_row(row, sources)
        if not mapped.get(TargetField.NAME):
            return RowOutcome.errored(row_number, "Name is required")

        resolution = resolve_duplicate(mapped, strategy, client_store, import_job_id=job_id)
        if resolution.action == DuplicateAction.SKIP:
            return RowOutcome.skipped(row_number, resolution.existing_record_id)

        fields = build_client_fields(mapped)
        if resolution.action == DuplicateAction.UPDATE:
            record = client_store.update(resolution.existing_record_id, fields, import_job_id=job_id)
            return RowOutcome.updated(row_number, record["id"])

        if not fields.client_id:
            fields.client_id = allocate_client_id()
        record = client_store.create(fields, import_job_id=job_id)
        return RowOutcome.created(row_number, record["id"])
    except Exception as exc:
        logger.warning("Row %d of import job %s failed: %s", row_number, job_id, exc)
        return RowOutcome.errored(row_number, _describe_row_error(exc))


def execution_timeout_seconds(row_count: int) -> float:
    return settings.import_execute_timeout_base_seconds + row_count * settings.import_execute_timeout_per_row_ms / 1000


def _fail_quietly(job_id: str, message: str, **kwargs) -> None:
    """Best-effort failure marker for when storage itself may be the problem."""
    try:
        fail_import_job(job_id, message, **kwargs)
    except SQLAlchemyError:
        logger.exception("Could not mark import job %s as failed", job_id)


def _reserved_client_ids(rows: Sequence[Sequence[str]], sources: Dict[TargetField, FieldSource]) -> Set[str]:
    """Client ids the file itself supplies; generated ids must not reuse them."""
    source = sources.get(TargetField.CLIENT_ID)
    if source is None:
        return set()
    client_id_only = {TargetField.CLIENT_ID: source}
    reserved = set()
    for row in rows:
        client_id = extract_mapped_row(row, client_id_only).get(TargetField.CLIENT_ID)
        if client_id:
            reserved.add(client_id)
    return reserved


def _run_rows(
    job_id: str,
    staged: StagedRows,
    sources: Dict[TargetField, FieldSource],
    strategy: DuplicateStrategy,
    client_store,
    timeout_seconds: float,
) -> ImportResult:
    try:
        sequence = itertools.count(client_store.next_client_sequence())
    except SQLAlchemyError as exc:
        logger.exception("Import job %s could not start", job_id)
        _fail_quietly(job_id, "Client storage unavailable; no rows were imported.")
        raise ImportStorageError("Client storage unavailable; no rows were imported.") from exc

    reserved = _reserved_client_ids(staged.rows, sources)

    def allocate_client_id() -> str:
        client_id = format_client_id(next(sequence))
        while client_id in reserved:
            client_id = format_client_id(next(sequence))
        return client_id

    deadline = time.monotonic() + timeout_seconds
    outcomes: List[RowOutcome] = []
    for row_number, row in enumerate(staged.rows, start=1):
        if time.monotonic() > deadline:
            partial = summarize_outcomes(outcomes, error_limit=settings.import_error_display_limit)
            error = ImportTimeoutError(job_id, timeout_seconds, len(outcomes))
            _fail_quietly(job_id, error.message, result=partial, errors=error_details(outcomes))
            raise error
        outcomes.append(
            process_row(
                row_number,
                row,
                sources,
                strategy,
                client_store,
                job_id=job_id,
                allocate_client_id=allocate_client_id,
            )
        )

    result = summarize_outcomes(outcomes, error_limit=settings.import_error_display_limit)
    try:
        complete_import_job(job_id, result, errors=error_details(outcomes))
    except SQLAlchemyError as exc:
        logger.exception("Import job %s finished but its result could not be saved", job_id)
        _fail_quietly(job_id, "Import finished but the result could not be saved.")
        raise ImportStorageError("Import finished but the result could not be saved.") from exc
    return result


def execute_import(
    job_id: str,
    mappings: Sequence[ColumnMapping],
    duplicate_strategy: DuplicateStrategy,
    *,
    client_store=None,
    timeout_seconds: Optional[float] = None,
) -> ImportResult:
    """
    Import the staged rows of a previewed job into the client store.

    Raises:
        ImportJobNotFoundError: unknown job, job not previewed, or rows expired
            (the job is then marked failed)
        ImportJobBusyError: another request is executing the job
        MappingValidationError: no (or more than one) column mapped to Name
        ImportStorageError: storage failed outside of row processing
        ImportTimeoutError: execution ran past its deadline (retryable)
    """
    client_store = client_store or ClientRepository()
    mappings = list(mappings)

    try:
        job = get_import_job(job_id)
    except SQLAlchemyError as exc:
        logger.exception("Could not load import job %s", job_id)
        raise ImportStorageError("Import storage unavailable. Please try again.") from exc

    if job is None:
        raise ImportJobNotFoundError(job_id)
    if job["status"] == ImportJobStatus.EXECUTING:
        raise ImportJobBusyError(job_id)
    if job["status"] != ImportJobStatus.PREVIEWED:
        raise ImportJobNotFoundError(
            job_id,
            f"Import job '{job_id}' is already {job['status'].value}. Please upload the file again.",
        )

    staged = staged_rows.get(job_id)
    if staged is None:
        _expire_quietly([job_id])
        raise ImportJobNotFoundError(job_id)

    validate_mappings(mappings, staged.headers)
    sources = build_field_sources(mappings, staged.headers)
    if timeout_seconds is None:
        timeout_seconds = execution_timeout_seconds(len(staged.rows))

    with JobLockManager.try_acquire(job_id) as acquired:
        if not acquired:
            raise ImportJobBusyError(job_id)

        try:
            claimed = claim_import_job(job_id, duplicate_strategy=duplicate_strategy, mappings=mappings)
        except SQLAlchemyError as exc:
            logger.exception("Could not claim import job %s", job_id)
            raise ImportStorageError("Import storage unavailable. Please try again.") from exc
        if not claimed:
            raise ImportJobBusyError(job_id)

        logger.info(
            "Executing import job %s: %d rows, strategy=%s, mapped fields=%s",
            job_id,
            len(staged.rows),
            duplicate_strategy.value,
            sorted(field.value for field in sources),
        )
        try:
            return _run_rows(job_id, staged, sources, duplicate_strategy, client_store, timeout_seconds)
        except ImportExecutionError:
            raise
        except Exception:
            logger.exception("Import job %s stopped unexpectedly", job_id)
            _fail_quietly(job_id, "Import stopped unexpectedly; see server logs.")
            raise
        finally:
            staged_rows.release(job_id)
            JobLockManager.discard(job_id)
