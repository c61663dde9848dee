"""
Tests for reading uploaded CSV/XLSX client files.
"""

import pytest

from advisor_crm.domain.imports.errors import (
    FileTooLargeError,
    RowLimitExceededError,
    UnparseableFileError,
    UnsupportedFileTypeError,
)
from advisor_crm.domain.imports.processors.tabular_processor import detect_file_type, parse_tabular_file
from tests.utils.files import csv_bytes, xlsx_bytes


ROWS = [
    ["Full Name", "E-Mail", "Cell Phone", "Status"],
    ["Jane Doe", "JANE@EX.com", "555-123-4567", "Lead"],
    ["John Roe", "john@ex.com", "5559876543", "Active"],
    ["Ann Poe", "", "", ""],
]


class TestDetectFileType:

    def test_supported_extensions(self):
        assert detect_file_type("clients.csv") == "csv"
        assert detect_file_type("CLIENTS.CSV") == "csv"
        assert detect_file_type("book.xlsx") == "excel"

    @pytest.mark.parametrize("filename", ["clients.pdf", "clients.json", "clients", "", None, "legacy.xls"])
    def test_rejects_other_types(self, filename):
        with pytest.raises(UnsupportedFileTypeError):
            detect_file_type(filename)


class TestParseCsv:

    def test_headers_and_rows_are_strings(self):
        table = parse_tabular_file(csv_bytes(ROWS), "clients.csv")

        assert table.headers == ROWS[0]
        assert table.rows == ROWS[1:]
        assert table.total_rows == 3

    def test_total_rows_excludes_header_and_blank_lines(self):
        content = b"\n\nName,Email\nJane,j@x.com\n\n,\nBob,b@x.com\n"

        table = parse_tabular_file(content, "clients.csv")

        assert table.headers == ["Name", "Email"]
        assert table.total_rows == 2

    def test_first_non_empty_row_is_header(self):
        content = b",,\nName,Phone,Status\nJane,555,Lead\n"

        table = parse_tabular_file(content, "clients.csv")

        assert table.headers == ["Name", "Phone", "Status"]
        assert table.rows == [["Jane", "555", "Lead"]]

    def test_quoted_cells_keep_commas(self):
        content = b'Name,Tags\n"Doe, Jane","vip, retiree"\n'

        table = parse_tabular_file(content, "clients.csv")

        assert table.rows == [["Doe, Jane", "vip, retiree"]]

    def test_numbers_are_not_inferred(self):
        content = b"Name,Client ID,Phone\nJane,007,5551234567\n"

        table = parse_tabular_file(content, "clients.csv")

        assert table.rows == [["Jane", "007", "5551234567"]]

    def test_ragged_rows_are_aligned_to_header(self):
        content = b"A,B\n1\n2,3,4\n"

        table = parse_tabular_file(content, "clients.csv")

        assert table.rows == [["1", ""], ["2", "3"]]

    def test_cells_are_trimmed_and_bom_removed(self):
        content = "\ufeffName , Email\n  Jane  , j@x.com \n".encode("utf-8")

        table = parse_tabular_file(content, "clients.csv")

        assert table.headers == ["Name", "Email"]
        assert table.rows == [["Jane", "j@x.com"]]

    def test_latin1_fallback(self):
        content = "Name\nJosé\n".encode("latin-1")

        table = parse_tabular_file(content, "clients.csv")

        assert table.rows == [["José"]]

    def test_sample_is_bounded_prefix(self):
        rows = [["Name"]] + [[f"Client {i}"] for i in range(20)]

        table = parse_tabular_file(csv_bytes(rows), "clients.csv")

        assert table.sample(5) == [[f"Client {i}"] for i in range(5)]
        assert table.total_rows == 20


class TestParseXlsx:

    def test_reads_first_sheet(self):
        table = parse_tabular_file(xlsx_bytes(ROWS), "clients.xlsx")

        assert table.headers == ROWS[0]
        assert table.total_rows == 3
        assert table.rows[0] == ["Jane Doe", "JANE@EX.com", "555-123-4567", "Lead"]
        # empty cells come back as empty strings, not NaN
        assert table.rows[2] == ["Ann Poe", "", "", ""]

    def test_garbage_workbook_is_unparseable(self):
        with pytest.raises(UnparseableFileError):
            parse_tabular_file(b"definitely not a zip archive", "clients.xlsx")


class TestLimits:

    def test_file_too_large(self):
        content = csv_bytes(ROWS)

        with pytest.raises(FileTooLargeError) as exc_info:
            parse_tabular_file(content, "clients.csv", max_bytes=len(content) - 1)

        assert exc_info.value.size_bytes == len(content)

    def test_row_limit(self):
        with pytest.raises(RowLimitExceededError) as exc_info:
            parse_tabular_file(csv_bytes(ROWS), "clients.csv", max_rows=2)

        assert exc_info.value.row_count == 3

    def test_row_limit_is_inclusive(self):
        table = parse_tabular_file(csv_bytes(ROWS), "clients.csv", max_rows=3)

        assert table.total_rows == 3

    def test_type_is_checked_before_size(self):
        with pytest.raises(UnsupportedFileTypeError):
            parse_tabular_file(b"x" * 100, "clients.txt", max_bytes=10)

    @pytest.mark.parametrize("content", [b"", b"\n\n", b",,,\n"])
    def test_empty_file_is_unparseable(self, content):
        with pytest.raises(UnparseableFileError):
            parse_tabular_file(content, "clients.csv")

    def test_binary_csv_is_unparseable(self):
        with pytest.raises(UnparseableFileError):
            parse_tabular_file(b"Name\x00\x01\x02\nJane", "clients.csv")
