"""
Read uploaded client spreadsheets (CSV or XLSX) into headers + string rows.

All cells are read as strings; no type inference happens here so that the
transforms applied later see exactly what was in the file.
"""
import csv
import io
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from advisor_crm.core.config import settings
from advisor_crm.domain.imports.errors import (
    FileTooLargeError,
    RowLimitExceededError,
    UnparseableFileError,
    UnsupportedFileTypeError,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv": "csv", ".xlsx": "excel"}


@dataclass
class ParsedTable:
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    def sample(self, size: int) -> List[List[str]]:
        return [list(row) for row in self.rows[:size]]


def detect_file_type(filename: Optional[str]) -> str:
    """
    Detect file type from the filename extension.

    Returns:
        'csv' or 'excel'

    Raises:
        UnsupportedFileTypeError: for any other extension
    """
    extension = os.path.splitext(filename or "")[1].lower()
    file_type = SUPPORTED_EXTENSIONS.get(extension)
    if file_type is None:
        raise UnsupportedFileTypeError(filename or "")
    return file_type


def _cell_to_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_blank(row: List[str]) -> bool:
    return not any(cell for cell in row)


def _decode_csv(file_content: bytes) -> str:
    try:
        return file_content.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Spreadsheet exports from Excel on Windows are commonly cp1252
        logger.info("CSV is not valid UTF-8; decoding as latin-1")
        return file_content.decode("latin-1")


def _read_csv_rows(file_content: bytes) -> List[List[str]]:
    text_content = _decode_csv(file_content)
    if "\x00" in text_content:
        raise UnparseableFileError("CSV file contains binary data and could not be parsed.")
    try:
        reader = csv.reader(io.StringIO(text_content, newline=""))
        return [[_cell_to_text(cell) for cell in row] for row in reader]
    except csv.Error as exc:
        raise UnparseableFileError(f"Could not parse CSV file: {exc}") from exc


def _read_excel_rows(file_content: bytes) -> List[List[str]]:
    try:
        df = pd.read_excel(
            io.BytesIO(file_content),
            sheet_name=0,
            header=None,
            dtype=str,
            na_filter=False,
            engine="openpyxl",
        )
    except Exception as exc:
        raise UnparseableFileError(f"Failed to parse XLSX file: {exc}") from exc

    return [[_cell_to_text(cell) for cell in row] for row in df.itertuples(index=False, name=None)]


def _align(row: List[str], width: int) -> List[str]:
    """Pad or truncate ``row`` so it lines up with the header row."""
    if len(row) < width:
        return row + [""] * (width - len(row))
    return row[:width]


def parse_tabular_file(
    file_content: bytes,
    filename: str,
    *,
    max_bytes: Optional[int] = None,
    max_rows: Optional[int] = None,
) -> ParsedTable:
    """
    Parse an uploaded CSV/XLSX file.

    The first non-empty row is the header row. Completely blank rows are
    dropped; remaining rows are aligned to the header width.

    Raises:
        UnsupportedFileTypeError, FileTooLargeError, RowLimitExceededError,
        UnparseableFileError
    """
    file_type = detect_file_type(filename)

    max_bytes = max_bytes if max_bytes is not None else settings.import_max_file_size_mb * 1024 * 1024
    max_rows = max_rows if max_rows is not None else settings.import_max_rows

    if len(file_content) > max_bytes:
        raise FileTooLargeError(len(file_content), max_bytes)

    raw_rows = _read_csv_rows(file_content) if file_type == "csv" else _read_excel_rows(file_content)
    non_blank = [row for row in raw_rows if not _is_blank(row)]
    if not non_blank:
        raise UnparseableFileError("File is empty; expected a header row followed by client rows.")

    headers = non_blank[0]
    # Trailing empty header cells come from stray delimiters or formatted-but-empty columns
    while headers and not headers[-1]:
        headers = headers[:-1]
    if not headers:
        raise UnparseableFileError("Header row is empty.")

    data_rows = [_align(row, len(headers)) for row in non_blank[1:]]
    data_rows = [row for row in data_rows if not _is_blank(row)]

    if len(data_rows) > max_rows:
        raise RowLimitExceededError(len(data_rows), max_rows)

    logger.info(
        "Parsed %s file '%s': %d columns, %d data rows",
        file_type,
        filename,
        len(headers),
        len(data_rows),
    )
    return ParsedTable(headers=headers, rows=data_rows)
