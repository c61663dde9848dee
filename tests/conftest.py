"""
Pytest configuration and fixtures for Advisor CRM tests.

Tests run against an in-memory SQLite database that replaces the
application engine, so no PostgreSQL server is needed.
"""

import itertools
import os
from datetime import datetime, timedelta, timezone

# The app must not try to bootstrap the configured PostgreSQL database.
os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest

from advisor_crm.db import clients as db_clients
from advisor_crm.db import session as db_session
from advisor_crm.db import tables as db_tables
from advisor_crm.db.session import build_engine
from advisor_crm.domain.imports import jobs as import_jobs
from advisor_crm.domain.imports.staging import staged_rows


@pytest.fixture
def db_engine(monkeypatch):
    """
    Fresh in-memory database with all CRM tables, wired in as the app engine.

    Scope: function (every test starts from empty tables)
    """
    engine = build_engine("sqlite://")
    db_tables.metadata.create_all(engine)
    monkeypatch.setattr(db_session, "_engine", engine)
    monkeypatch.setattr(db_tables, "_tables_initialized", True)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def ticking_clock(monkeypatch):
    """
    Advance one second per timestamp taken by the stores, so "earliest
    created" and "newest first" orderings never depend on clock resolution.
    """
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = itertools.count()

    def _now():
        return start + timedelta(seconds=next(ticks))

    monkeypatch.setattr(db_clients, "_utcnow", _now)
    monkeypatch.setattr(import_jobs, "_utcnow", _now)
    return _now


@pytest.fixture(autouse=True)
def clear_staged_rows():
    """Staged import rows are process-global; isolate them per test."""
    staged_rows.clear()
    yield
    staged_rows.clear()
