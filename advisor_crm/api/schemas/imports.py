"""
Request/response models and closed enums for the bulk client import pipeline.

Python code uses snake_case; the wire format is camelCase to match the UI.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes field names as camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TargetField(str, Enum):
    """CRM fields a source column can be imported into."""
    SKIP = "skip"
    NAME = "name"
    CLIENT_ID = "client_id"
    HOME_EMAIL = "home_email"
    HOME_EMAIL_2 = "home_email_2"
    WORK_EMAIL = "work_email"
    PERSONAL_EMAIL = "personal_email"
    OTHER_EMAIL = "other_email"
    HOME_PHONE = "home_phone"
    WORK_PHONE = "work_phone"
    CELLULAR_PHONE = "cellular_phone"
    OTHER_PHONE = "other_phone"
    STATUS = "status"
    TAGS = "tags"


class ColumnTransform(str, Enum):
    NONE = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    PHONE_FORMAT = "phone_format"


class DuplicateStrategy(str, Enum):
    """How rows that match an existing client are handled. Applies to every row of a job."""
    SKIP = "skip"
    UPDATE = "update"
    CREATE_NEW = "create_new"


class ImportJobStatus(str, Enum):
    QUEUED = "queued"
    PREVIEWED = "previewed"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = {ImportJobStatus.COMPLETED, ImportJobStatus.FAILED}


class ColumnMapping(CamelModel):
    source_column: str
    target_field: TargetField = TargetField.SKIP
    transform: ColumnTransform = ColumnTransform.NONE


class ImportPreview(CamelModel):
    """Result of parsing an uploaded file, returned before anything is written."""
    job_id: str
    headers: List[str]
    sample_rows: List[List[str]]
    total_rows: int
    suggested_mappings: List[ColumnMapping] = Field(default_factory=list)


class ExecuteImportRequest(CamelModel):
    mappings: List[ColumnMapping]
    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.SKIP


class ImportErrorDetail(CamelModel):
    row: int
    message: str


class ImportResult(CamelModel):
    total_processed: int
    success_count: int
    error_count: int
    skipped_count: int
    errors: List[ImportErrorDetail] = Field(default_factory=list)


class ImportJobInfo(CamelModel):
    """Metadata about an import job."""
    id: str
    filename: str
    status: ImportJobStatus
    total_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    duplicate_strategy: Optional[DuplicateStrategy] = None
    error_message: Optional[str] = None
    errors: List[ImportErrorDetail] = Field(default_factory=list)
    uploaded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ImportHistoryResponse(CamelModel):
    jobs: List[ImportJobInfo]
    total_count: int
