"""
Spreadsheet ingestion for credit logs.

Credit logs arrive as Excel workbooks (or CSV exports) where the header row is
not necessarily the first row: a few metadata rows (ISBN, title) usually sit
above it. Every sheet is read as a raw grid of strings, the header row is
located by label, and one CreditRecord is produced per row that has both a
source and an acknowledgement.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from credit_common.errors import MissingColumns, NoDataRows, UnsupportedFileType
from credit_common.schema import (
    CREDIT_COLUMNS,
    HEADER_ANCHOR_FIELDS,
    METADATA_LABELS,
    METADATA_SEARCH_DEPTH,
    CreditRecord,
    clean_header_name,
)

LOGGER = logging.getLogger(__name__)

EXCEL_ENGINES = {".xlsx": "openpyxl", ".xlsm": "openpyxl", ".xls": "xlrd"}
EXCEL_EXTENSIONS = set(EXCEL_ENGINES)
TABLE_EXTENSIONS = EXCEL_EXTENSIONS | {".csv"}

Rows = List[List[str]]


@dataclass
class HeaderLocation:
    row_index: int
    columns: Dict[str, int]


@dataclass
class IngestedTable:
    records: List[CreditRecord]
    isbn: Optional[str]
    title: Optional[str]
    raw_rows: Rows = field(default_factory=list)
    header_row_index: int = 0
    sheet_name: str = ""


def _excel_source(path_or_bytes: Any) -> Any:
    """
    Return a rewindable source for pandas.

    Bytes/BytesIO inputs are rewound to position 0 so multiple readers can consume them.
    """

    if isinstance(path_or_bytes, BytesIO):
        path_or_bytes.seek(0)
        return path_or_bytes
    if isinstance(path_or_bytes, (bytes, bytearray)):
        return BytesIO(path_or_bytes)
    return path_or_bytes


def _coerce_input(path_or_bytes: Any, filename: Optional[str]) -> Tuple[Any, str]:
    """Resolve the payload and the name used to pick a reader."""

    if isinstance(path_or_bytes, (str, Path)):
        path = Path(path_or_bytes)
        return path, filename or path.name

    name = filename or getattr(path_or_bytes, "name", "") or ""
    # Upload wrappers expose getvalue(); coerce to bytes early.
    if hasattr(path_or_bytes, "getvalue") and not isinstance(path_or_bytes, (bytes, bytearray, BytesIO)):
        path_or_bytes = path_or_bytes.getvalue()
    return path_or_bytes, str(name)


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    if value is pd.NaT:
        return ""
    return str(value)


def _read_csv_rows(source: Any) -> Rows:
    if isinstance(source, Path):
        text = source.read_text(encoding="utf-8-sig")
    else:
        payload = _excel_source(source)
        raw = payload.read() if hasattr(payload, "read") else payload
        text = raw.decode("utf-8-sig") if isinstance(raw, (bytes, bytearray)) else str(raw)
    return [list(row) for row in csv.reader(io.StringIO(text))]


def read_workbook_rows(path_or_bytes: Any, filename: Optional[str] = None) -> Dict[str, Rows]:
    """
    Read every sheet of a workbook as a grid of strings keyed by sheet name.

    Integral numbers lose their trailing ".0" and empty cells become "".
    """

    source, name = _coerce_input(path_or_bytes, filename)
    extension = Path(name).suffix.lower()
    if extension not in TABLE_EXTENSIONS:
        raise UnsupportedFileType(
            f"Unsupported file type '{extension or name}'. Please upload an Excel (.xlsx, .xls) or CSV file."
        )

    if extension == ".csv":
        return {Path(name).stem or "Sheet1": _read_csv_rows(source)}

    frames = pd.read_excel(
        _excel_source(source),
        sheet_name=None,
        header=None,
        dtype=object,
        engine=EXCEL_ENGINES[extension],
    )
    sheets: Dict[str, Rows] = {}
    for sheet_name, frame in frames.items():
        sheets[str(sheet_name)] = [
            [_cell_to_str(value) for value in row] for row in frame.itertuples(index=False, name=None)
        ]
    return sheets


def find_header_row(rows: Sequence[Sequence[str]]) -> HeaderLocation:
    """
    Locate the header row and the column index of every credit field.

    The first row that carries both anchor labels is the header; every other
    field must then be found on that same row.
    """

    for row_index, row in enumerate(rows):
        cleaned = [clean_header_name(cell) for cell in row]
        if not all(CREDIT_COLUMNS[name] in cleaned for name in HEADER_ANCHOR_FIELDS):
            continue
        columns: Dict[str, int] = {}
        missing: List[str] = []
        for name, label in CREDIT_COLUMNS.items():
            if label in cleaned:
                columns[name] = cleaned.index(label)
            else:
                missing.append(label)
        if missing:
            raise MissingColumns(missing)
        return HeaderLocation(row_index=row_index, columns=columns)

    raise MissingColumns(CREDIT_COLUMNS.values())


def find_metadata(rows: Sequence[Sequence[str]]) -> Tuple[Optional[str], Optional[str]]:
    """Scan the first rows for "ISBN"/"Title" cells and take the value to their right."""

    found: Dict[str, Optional[str]] = {key: None for key in METADATA_LABELS}
    for row in rows[:METADATA_SEARCH_DEPTH]:
        for col in range(len(row) - 1):
            cell = str(row[col]).lower().strip()
            value = str(row[col + 1]).strip()
            for key, label in METADATA_LABELS.items():
                if label in cell and not found[key] and value:
                    found[key] = value
        if all(found.values()):
            break
    return found["isbn"], found["title"]


def _cell(row: Sequence[str], index: int) -> str:
    if index < len(row):
        return str(row[index]).strip()
    return ""


def extract_records(rows: Sequence[Sequence[str]], header: HeaderLocation) -> List[CreditRecord]:
    """Build records from the rows below the header that have a source and an acknowledgement."""

    cols = header.columns
    records: List[CreditRecord] = []
    for row_index in range(header.row_index + 1, len(rows)):
        row = rows[row_index]
        source = _cell(row, cols["source"])
        acknowledgement = _cell(row, cols["acknowledgement"])
        if not source or not acknowledgement:
            continue
        records.append(
            CreditRecord(
                source=source,
                acknowledgement=acknowledgement,
                page_number=_cell(row, cols["page_number"]),
                usage_classification=_cell(row, cols["usage_classification"]),
                license_fee=_cell(row, cols["license_fee"]),
                original_row_index=row_index,
            )
        )
    return records


def ingest_table(path_or_bytes: Any, filename: Optional[str] = None) -> IngestedTable:
    """
    Ingest the first sheet that carries every required credit column.

    Raises MissingColumns (naming the labels that could not be found) when no
    sheet qualifies, and NoDataRows when the qualifying sheet has no credits.
    """

    sheets = read_workbook_rows(path_or_bytes, filename)
    best_error: Optional[MissingColumns] = None

    for sheet_name, rows in sheets.items():
        if not rows:
            continue
        try:
            header = find_header_row(rows)
        except MissingColumns as exc:
            LOGGER.debug("Sheet '%s' skipped: %s", sheet_name, exc)
            if best_error is None or len(exc.missing) < len(best_error.missing):
                best_error = exc
            continue

        isbn, title = find_metadata(rows)
        records = extract_records(rows, header)
        if not records:
            raise NoDataRows("No data rows found under the required headers.")

        LOGGER.info(
            "Ingested %d credit rows from sheet '%s' (header on row %d).",
            len(records),
            sheet_name,
            header.row_index + 1,
        )
        return IngestedTable(
            records=records,
            isbn=isbn,
            title=title,
            raw_rows=[list(row) for row in rows],
            header_row_index=header.row_index,
            sheet_name=sheet_name,
        )

    raise best_error or MissingColumns(CREDIT_COLUMNS.values())


__all__ = [
    "HeaderLocation",
    "IngestedTable",
    "read_workbook_rows",
    "find_header_row",
    "find_metadata",
    "extract_records",
    "ingest_table",
]
