"""
Bulk client import endpoints: upload-preview, execute, job status, history
and template download.
"""
import logging

from fastapi import APIRouter, File, HTTPException, Response, UploadFile
from fastapi.concurrency import run_in_threadpool

from advisor_crm.api.schemas.imports import (
    ExecuteImportRequest,
    ImportHistoryResponse,
    ImportJobInfo,
    ImportPreview,
    ImportResult,
)
from advisor_crm.core.config import settings
from advisor_crm.domain.imports.errors import (
    FileTooLargeError,
    ImportJobBusyError,
    ImportJobNotFoundError,
    ImportPipelineError,
    ImportStorageError,
    ImportTimeoutError,
    MappingValidationError,
    UploadError,
)
from advisor_crm.domain.imports.jobs import get_import_job, list_import_jobs
from advisor_crm.domain.imports.orchestrator import execute_import, preview_import_file
from advisor_crm.domain.imports.templates import build_import_template

router = APIRouter(prefix="/import", tags=["imports"])

logger = logging.getLogger(__name__)


def _to_http_error(exc: ImportPipelineError) -> HTTPException:
    """Map pipeline errors onto HTTP status codes."""
    if isinstance(exc, FileTooLargeError):
        status_code = 413
    elif isinstance(exc, UploadError):
        status_code = 400
    elif isinstance(exc, MappingValidationError):
        status_code = 422
    elif isinstance(exc, ImportJobNotFoundError):
        status_code = 404
    elif isinstance(exc, ImportJobBusyError):
        status_code = 409
    elif isinstance(exc, ImportTimeoutError):
        status_code = 504
    elif isinstance(exc, ImportStorageError):
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=exc.message)


@router.post("/upload-preview", response_model=ImportPreview)
async def upload_preview_endpoint(file: UploadFile = File(...)):
    """
    Upload a CSV/XLSX file of clients and preview it.

    Returns the job id, headers, the first few rows, the total row count and
    a suggested column mapping. No client data is written.
    """
    filename = file.filename or ""
    logger.info("Received import upload '%s'", filename)

    max_bytes = settings.import_max_file_size_mb * 1024 * 1024
    # Bounded read; anything past max_bytes is rejected by the parser
    file_content = await file.read(max_bytes + 1)

    try:
        return await run_in_threadpool(preview_import_file, file_content, filename)
    except ImportPipelineError as e:
        logger.warning("Import upload '%s' rejected: %s", filename, e.message)
        raise _to_http_error(e)
    except Exception as e:
        logger.exception("Import upload processing failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to process import file")


@router.post("/execute/{job_id}", response_model=ImportResult)
async def execute_import_endpoint(job_id: str, request: ExecuteImportRequest):
    """
    Import the rows of a previewed job using the given mappings and duplicate strategy.

    Row-level problems are reported in the result; the request itself only
    fails for unknown/expired jobs, invalid mappings, concurrent execution,
    timeouts or storage outages.
    """
    try:
        return await run_in_threadpool(
            execute_import,
            job_id,
            request.mappings,
            request.duplicate_strategy,
        )
    except ImportPipelineError as e:
        logger.warning("Import job %s execute rejected: %s", job_id, e.message)
        raise _to_http_error(e)
    except Exception as e:
        logger.exception("Failed to execute import job %s: %s", job_id, e)
        raise HTTPException(status_code=500, detail="Failed to execute import")


@router.get("/job/{job_id}", response_model=ImportJobInfo)
async def get_import_job_endpoint(job_id: str):
    job = await run_in_threadpool(get_import_job, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return ImportJobInfo(**job)


@router.get("/history", response_model=ImportHistoryResponse)
async def import_history_endpoint(limit: int = 0, offset: int = 0):
    limit = limit if limit > 0 else settings.import_history_limit
    jobs, total = await run_in_threadpool(list_import_jobs, limit=limit, offset=offset)
    return ImportHistoryResponse(jobs=[ImportJobInfo(**job) for job in jobs], total_count=total)


@router.get("/template/{template_format}")
async def download_template_endpoint(template_format: str):
    try:
        content, media_type, filename = build_import_template(template_format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
