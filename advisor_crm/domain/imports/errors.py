"""
Exceptions raised by the client import pipeline.

Upload, mapping and job-lifecycle errors abort the whole operation before
anything is written. Row-level problems are never raised; they are recorded
as row outcomes and reported with the result.
"""
from typing import Optional


class ImportPipelineError(Exception):
    """Base class for all import pipeline errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UploadError(ImportPipelineError):
    """Uploaded file was rejected before an import job was created."""


class UnsupportedFileTypeError(UploadError):

    def __init__(self, filename: str, message: Optional[str] = None):
        self.filename = filename
        super().__init__(message or f"Invalid file type for '{filename}'. Only CSV and XLSX files are allowed.")


class FileTooLargeError(UploadError):

    def __init__(self, size_bytes: int, max_bytes: int, message: Optional[str] = None):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            message
            or f"File is {size_bytes} bytes; the maximum upload size is {max_bytes // (1024 * 1024)}MB."
        )


class RowLimitExceededError(UploadError):

    def __init__(self, row_count: int, max_rows: int, message: Optional[str] = None):
        self.row_count = row_count
        self.max_rows = max_rows
        super().__init__(message or f"File contains {row_count} data rows; the limit is {max_rows}.")


class UnparseableFileError(UploadError):
    pass


class MappingValidationError(ImportPipelineError):
    """Column mappings cannot be executed (e.g. no column mapped to the client name)."""


class ImportJobError(ImportPipelineError):
    pass


class ImportJobNotFoundError(ImportJobError):

    def __init__(self, job_id: str, message: Optional[str] = None):
        self.job_id = job_id
        super().__init__(message or f"Import job '{job_id}' not found or expired. Please upload the file again.")


class ImportJobBusyError(ImportJobError):

    def __init__(self, job_id: str, message: Optional[str] = None):
        self.job_id = job_id
        super().__init__(message or f"Import job '{job_id}' is already executing.")


class ImportExecutionError(ImportPipelineError):
    """Execution stopped outside of row processing; the job is marked failed."""
    retryable = False


class ImportStorageError(ImportExecutionError):
    pass


class ImportTimeoutError(ImportExecutionError):
    retryable = True

    def __init__(self, job_id: str, timeout_seconds: float, rows_attempted: int, message: Optional[str] = None):
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds
        self.rows_attempted = rows_attempted
        super().__init__(
            message
            or f"Import timed out after {timeout_seconds:.0f}s ({rows_attempted} rows attempted). "
            "Upload the file again to retry."
        )
