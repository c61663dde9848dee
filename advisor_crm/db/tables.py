"""
Table definitions for clients and import jobs.

Tables are declared with SQLAlchemy Core so the same definitions work on
PostgreSQL in production and SQLite in tests.
"""
import logging
import threading

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from advisor_crm.db.session import get_engine

logger = logging.getLogger(__name__)

metadata = MetaData()

import_jobs = Table(
    "import_jobs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("filename", String(500), nullable=False),
    Column("status", String(20), nullable=False, index=True),
    Column("total_rows", Integer, nullable=False, default=0),
    Column("success_count", Integer, nullable=False, default=0),
    Column("error_count", Integer, nullable=False, default=0),
    Column("skipped_count", Integer, nullable=False, default=0),
    Column("duplicate_strategy", String(20)),
    Column("mappings", JSON),
    Column("errors", JSON),
    Column("error_message", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("started_at", DateTime(timezone=True)),
    Column("completed_at", DateTime(timezone=True)),
)

clients = Table(
    "clients",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("client_id", String(50), unique=True),
    Column("name", String(255), nullable=False),
    Column("status", String(50)),
    Column("pipeline_stage", String(100)),
    Column("tags", Text),
    # 'manual' or 'import'; cleanup tooling keys off this marker
    Column("source", String(20), nullable=False, default="manual"),
    Column("import_count", Integer, nullable=False, default=0),
    Column("created_by_import_job_id", String(36), index=True),
    Column("last_import_job_id", String(36)),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

client_emails = Table(
    "client_emails",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("client_id", String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("email", String(320), nullable=False),
    Column("email_type", String(20), nullable=False),
    Column("normalized_email", String(320), nullable=False, index=True),
    Column("is_primary", Boolean, nullable=False, default=False),
    Column("position", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

client_phones = Table(
    "client_phones",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("client_id", String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("number", String(50), nullable=False),
    Column("phone_type", String(20), nullable=False),
    Column("normalized_phone", String(30), nullable=False, index=True),
    Column("is_primary", Boolean, nullable=False, default=False),
    Column("position", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

_tables_initialized = False
_table_init_lock = threading.Lock()


def ensure_tables() -> None:
    """Create the CRM tables on-demand, once per process."""
    global _tables_initialized
    if _tables_initialized:
        return

    with _table_init_lock:
        if _tables_initialized:
            return
        metadata.create_all(get_engine())
        logger.info("CRM tables ready: %s", ", ".join(sorted(metadata.tables)))
        _tables_initialized = True
