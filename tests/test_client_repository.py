"""
Tests for the SQL-backed client store.
"""

import pytest

from advisor_crm.db.clients import (
    SOURCE_IMPORT,
    SOURCE_MANUAL,
    ClientFields,
    ClientNotFoundError,
    ClientRepository,
    format_client_id,
    normalize_email,
)


@pytest.fixture
def repo(db_engine):
    return ClientRepository(db_engine)


def test_format_client_id():
    assert format_client_id(8) == "CL-0008"
    assert format_client_id(12345) == "CL-12345"
    assert format_client_id(3, prefix="AC-") == "AC-0003"


def test_normalize_email():
    assert normalize_email("  Jane@Example.COM ") == "jane@example.com"
    assert normalize_email("   ") is None
    assert normalize_email(None) is None


class TestCreate:

    def test_manual_client_defaults(self, repo):
        record = repo.create(ClientFields(name="Jane Doe"))

        assert record["name"] == "Jane Doe"
        assert record["client_id"] == "CL-0001"
        assert record["status"] == "Active"
        assert record["pipeline_stage"] == "Client Onboarded"
        assert record["source"] == SOURCE_MANUAL
        assert record["import_count"] == 0
        assert record["created_by_import_job_id"] is None
        assert record["emails"] == []
        assert record["phones"] == []

    def test_imported_client_is_marked(self, repo):
        record = repo.create(ClientFields(name="Jane Doe"), import_job_id="job-1")

        assert record["source"] == SOURCE_IMPORT
        assert record["import_count"] == 1
        assert record["created_by_import_job_id"] == "job-1"
        assert record["last_import_job_id"] == "job-1"

    def test_contacts_first_is_primary(self, repo):
        record = repo.create(
            ClientFields(
                name="Jane Doe",
                emails={"HOME": "jane@ex.com", "WORK": "jane@work.com"},
                phones={"CELLULAR": "(555) 123-4567"},
                tags=["vip", "retiree"],
            )
        )

        assert record["emails"] == [
            {"email": "jane@ex.com", "type": "HOME", "is_primary": True},
            {"email": "jane@work.com", "type": "WORK", "is_primary": False},
        ]
        assert record["phones"] == [{"number": "(555) 123-4567", "type": "CELLULAR", "is_primary": True}]
        assert record["tags"] == ["vip", "retiree"]

    def test_name_required(self, repo):
        with pytest.raises(ValueError):
            repo.create(ClientFields(name="   "))

    def test_client_ids_continue_from_highest(self, repo):
        repo.create(ClientFields(name="A", client_id="CL-0007"))
        repo.create(ClientFields(name="B", client_id="LEGACY-99"))

        assert repo.next_client_sequence() == 8
        assert repo.create(ClientFields(name="C"))["client_id"] == "CL-0008"


class TestFind:

    def test_match_by_email_case_insensitive(self, repo):
        created = repo.create(ClientFields(name="Jane", emails={"HOME": "Jane@Ex.com"}))

        match = repo.find_by_normalized_email_or_phone(" JANE@ex.com ", None)

        assert match["id"] == created["id"]

    def test_match_by_phone_digits(self, repo):
        created = repo.create(ClientFields(name="Jane", phones={"CELLULAR": "(555) 123-4567"}))

        assert repo.find_by_normalized_email_or_phone(None, "555.123.4567")["id"] == created["id"]

    def test_either_key_matches(self, repo):
        created = repo.create(ClientFields(name="Jane", emails={"HOME": "jane@ex.com"}))

        match = repo.find_by_normalized_email_or_phone("jane@ex.com", "5550000000")

        assert match["id"] == created["id"]

    def test_no_match(self, repo):
        repo.create(ClientFields(name="Jane", emails={"HOME": "jane@ex.com"}))

        assert repo.find_by_normalized_email_or_phone("bob@ex.com", "5559999999") is None
        assert repo.find_by_normalized_email_or_phone(None, None) is None

    def test_earliest_created_wins(self, repo):
        first = repo.create(ClientFields(name="First", emails={"HOME": "shared@ex.com"}))
        repo.create(ClientFields(name="Second", emails={"WORK": "shared@ex.com"}))

        match = repo.find_by_normalized_email_or_phone("shared@ex.com")

        assert match["id"] == first["id"]

    def test_excludes_clients_created_by_job(self, repo):
        repo.create(ClientFields(name="New", emails={"HOME": "jane@ex.com"}), import_job_id="job-1")

        assert repo.find_by_normalized_email_or_phone("jane@ex.com", exclude_import_job_id="job-1") is None
        assert repo.find_by_normalized_email_or_phone("jane@ex.com", exclude_import_job_id="job-2") is not None


class TestUpdate:

    def test_merge_keeps_existing_values(self, repo):
        existing = repo.create(
            ClientFields(name="Jane", status="Lead", emails={"HOME": "jane@ex.com"}, tags=["vip"])
        )

        updated = repo.update(existing["id"], ClientFields(phones={"CELLULAR": "(555) 123-4567"}))

        assert updated["name"] == "Jane"
        assert updated["status"] == "Lead"
        assert updated["tags"] == ["vip"]
        assert updated["emails"] == existing["emails"]
        assert updated["phones"] == [{"number": "(555) 123-4567", "type": "CELLULAR", "is_primary": True}]

    def test_same_type_contact_is_replaced(self, repo):
        existing = repo.create(ClientFields(name="Jane", emails={"HOME": "old@ex.com", "WORK": "w@ex.com"}))

        updated = repo.update(existing["id"], ClientFields(emails={"HOME": "new@ex.com"}))

        assert updated["emails"] == [
            {"email": "new@ex.com", "type": "HOME", "is_primary": True},
            {"email": "w@ex.com", "type": "WORK", "is_primary": False},
        ]
        assert repo.find_by_normalized_email_or_phone("old@ex.com") is None

    def test_import_update_counts(self, repo):
        existing = repo.create(ClientFields(name="Jane"))

        repo.update(existing["id"], ClientFields(status="Active"), import_job_id="job-1")
        updated = repo.update(existing["id"], ClientFields(status="Prospect"), import_job_id="job-2")

        assert updated["status"] == "Prospect"
        assert updated["import_count"] == 2
        assert updated["last_import_job_id"] == "job-2"
        assert updated["source"] == SOURCE_MANUAL
        assert updated["created_by_import_job_id"] is None

    def test_missing_client(self, repo):
        with pytest.raises(ClientNotFoundError):
            repo.update("does-not-exist", ClientFields(name="Ghost"))
