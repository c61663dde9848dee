"""
Tests for the imported-client cleanup helpers.
"""

import pytest

from advisor_crm.api.schemas.imports import DuplicateStrategy, ImportJobStatus
from advisor_crm.db.clients import ClientFields, ClientRepository
from advisor_crm.domain.imports.cleanup import purge_imported_clients, summarize_imported_clients
from advisor_crm.domain.imports.jobs import get_import_job, list_import_jobs
from advisor_crm.domain.imports.orchestrator import execute_import, preview_import_file
from tests.utils.files import csv_bytes


@pytest.fixture
def repo(db_engine):
    return ClientRepository(db_engine)


def _import(rows, strategy=DuplicateStrategy.UPDATE):
    preview = preview_import_file(csv_bytes([["Name", "Email"]] + rows), "clients.csv")
    execute_import(preview.job_id, preview.suggested_mappings, strategy)
    return preview.job_id


@pytest.fixture
def populated(repo):
    manual = repo.create(ClientFields(name="Manual", emails={"HOME": "manual@ex.com"}))
    first_job = _import([["Ann", "ann@ex.com"], ["Manual Updated", "manual@ex.com"]])
    second_job = _import([["Bob", "bob@ex.com"]])
    return manual, first_job, second_job


def test_summary_counts_by_job(populated):
    _, first_job, second_job = populated

    summary = summarize_imported_clients()

    assert summary["imported_clients"] == 2
    assert summary["by_job"] == {first_job: 1, second_job: 1}
    assert summary["manual_clients_updated_by_import"] == 1


def test_dry_run_deletes_nothing(repo, populated):
    result = purge_imported_clients(clear_jobs=True)

    assert result == {"clients_deleted": 2, "jobs_deleted": 2, "dry_run": True}
    assert summarize_imported_clients()["imported_clients"] == 2
    assert list_import_jobs()[1] == 2


def test_purge_keeps_manual_clients(repo, populated):
    manual, _, _ = populated

    result = purge_imported_clients(dry_run=False)

    assert result["clients_deleted"] == 2
    assert summarize_imported_clients()["imported_clients"] == 0
    remaining = repo.get(manual["id"])
    assert remaining["name"] == "Manual Updated"
    assert repo.find_by_normalized_email_or_phone("ann@ex.com") is None
    assert list_import_jobs()[1] == 2


def test_purge_single_job_and_its_record(repo, populated):
    _, first_job, second_job = populated

    result = purge_imported_clients(import_job_id=first_job, clear_jobs=True, dry_run=False)

    assert result == {"clients_deleted": 1, "jobs_deleted": 1, "dry_run": False}
    assert get_import_job(first_job) is None
    assert get_import_job(second_job)["status"] == ImportJobStatus.COMPLETED
    assert summarize_imported_clients()["by_job"] == {second_job: 1}


def test_unfinished_jobs_are_kept(db_engine):
    preview = preview_import_file(csv_bytes([["Name"], ["Ann"]]), "clients.csv")

    result = purge_imported_clients(clear_jobs=True, dry_run=False)

    assert result["jobs_deleted"] == 0
    assert get_import_job(preview.job_id)["status"] == ImportJobStatus.PREVIEWED
