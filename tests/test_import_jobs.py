"""
Tests for import job persistence and its state transitions.
"""

from advisor_crm.api.schemas.imports import (
    ColumnMapping,
    DuplicateStrategy,
    ImportJobStatus,
    ImportResult,
    TargetField,
)
from advisor_crm.domain.imports.jobs import (
    claim_import_job,
    complete_import_job,
    create_import_job,
    expire_import_jobs,
    fail_import_job,
    get_import_job,
    list_import_jobs,
    update_import_job,
)

NAME_MAPPING = [ColumnMapping(source_column="Name", target_field=TargetField.NAME)]


def _previewed_job(filename="clients.csv", total_rows=3):
    job = create_import_job(filename=filename, total_rows=total_rows)
    return update_import_job(job["id"], status=ImportJobStatus.PREVIEWED, expected_status=ImportJobStatus.QUEUED)


def test_create_and_get(db_engine):
    job = create_import_job(filename="clients.csv", total_rows=3)

    assert job["status"] == ImportJobStatus.QUEUED
    assert job["total_rows"] == 3
    assert job["success_count"] == 0
    assert job["errors"] == []
    assert job["uploaded_at"] is not None
    assert get_import_job(job["id"]) == job


def test_get_unknown_job(db_engine):
    assert get_import_job("missing") is None


def test_conditional_update(db_engine):
    job = create_import_job(filename="clients.csv", total_rows=1)

    assert update_import_job(job["id"], status=ImportJobStatus.PREVIEWED, expected_status=ImportJobStatus.EXECUTING) is None
    assert get_import_job(job["id"])["status"] == ImportJobStatus.QUEUED

    updated = update_import_job(job["id"], status=ImportJobStatus.PREVIEWED, expected_status=ImportJobStatus.QUEUED)
    assert updated["status"] == ImportJobStatus.PREVIEWED


def test_claim_is_at_most_once(db_engine):
    job = _previewed_job()

    assert claim_import_job(job["id"], duplicate_strategy=DuplicateStrategy.UPDATE, mappings=NAME_MAPPING) is True
    assert claim_import_job(job["id"], duplicate_strategy=DuplicateStrategy.UPDATE, mappings=NAME_MAPPING) is False

    claimed = get_import_job(job["id"])
    assert claimed["status"] == ImportJobStatus.EXECUTING
    assert claimed["duplicate_strategy"] == "update"
    assert claimed["mappings"] == [{"source_column": "Name", "target_field": "name", "transform": "none"}]
    assert claimed["started_at"] is not None


def test_claim_requires_previewed(db_engine):
    job = create_import_job(filename="clients.csv", total_rows=1)

    assert claim_import_job(job["id"], duplicate_strategy=DuplicateStrategy.SKIP, mappings=NAME_MAPPING) is False
    assert get_import_job(job["id"])["status"] == ImportJobStatus.QUEUED


def test_complete_records_counts_and_errors(db_engine):
    job = _previewed_job()
    claim_import_job(job["id"], duplicate_strategy=DuplicateStrategy.SKIP, mappings=NAME_MAPPING)
    result = ImportResult(total_processed=3, success_count=1, error_count=1, skipped_count=1)

    completed = complete_import_job(job["id"], result, errors=[{"row": 2, "message": "Name is required"}])

    assert completed["status"] == ImportJobStatus.COMPLETED
    assert (completed["success_count"], completed["error_count"], completed["skipped_count"]) == (1, 1, 1)
    assert completed["errors"] == [{"row": 2, "message": "Name is required"}]
    assert completed["completed_at"] is not None


def test_fail_keeps_partial_counts(db_engine):
    job = _previewed_job()
    partial = ImportResult(total_processed=1, success_count=1, error_count=0, skipped_count=0)

    failed = fail_import_job(job["id"], "Import timed out", result=partial, errors=[])

    assert failed["status"] == ImportJobStatus.FAILED
    assert failed["error_message"] == "Import timed out"
    assert failed["success_count"] == 1


def test_expire_only_touches_unexecuted_jobs(db_engine):
    previewed = _previewed_job()
    queued = create_import_job(filename="queued.csv", total_rows=1)
    done = _previewed_job()
    complete_import_job(
        done["id"],
        ImportResult(total_processed=0, success_count=0, error_count=0, skipped_count=0),
        errors=[],
    )

    assert expire_import_jobs([previewed["id"], queued["id"], done["id"]]) == 2
    assert get_import_job(previewed["id"])["status"] == ImportJobStatus.FAILED
    assert "expired" in get_import_job(queued["id"])["error_message"]
    assert get_import_job(done["id"])["status"] == ImportJobStatus.COMPLETED
    assert expire_import_jobs([]) == 0


def test_history_newest_first_with_paging(db_engine):
    ids = [create_import_job(filename=f"file{i}.csv", total_rows=i)["id"] for i in range(5)]

    jobs, total = list_import_jobs(limit=2)
    assert total == 5
    assert [job["id"] for job in jobs] == [ids[4], ids[3]]

    jobs, _ = list_import_jobs(limit=2, offset=4)
    assert [job["id"] for job in jobs] == [ids[0]]
