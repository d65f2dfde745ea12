import importlib.util
from io import BytesIO

import pandas as pd
import pytest

from credit_common.errors import MissingColumns, NoDataRows, UnsupportedFileType
from credit_data import ingest
from credit_data.ingest import find_header_row, find_metadata, ingest_table, read_workbook_rows

CREDIT_ROWS = [
    ["Source", "Acknowledgement", "Page Number", "Usage Classification", "Licence Fee"],
    ["Alamy", "Jane Doe", 3, "License", 20],
]


def test_ingest_finds_header_below_metadata(credit_log):
    """Metadata rows above the header are read for ISBN/title and skipped for records."""

    table = ingest_table(credit_log)

    assert table.isbn == "9780000000001"
    assert table.title == "Birds of the World"
    assert table.header_row_index == 3
    assert table.sheet_name == "Log"
    assert [(r.source, r.acknowledgement, r.page_number) for r in table.records] == [
        ("Getty Images", "John Smith / Getty Images", "12"),
        ("Shutterstock", "Shutterstock", "FC"),
        ("Getty Images", "John Smith", "14"),
        ("Alamy", "Jane Doe", ""),
    ]
    assert [r.original_row_index for r in table.records] == [4, 6, 7, 8]
    assert table.records[0].license_fee == "45.5"
    assert table.records[1].license_fee == "0"
    assert table.records[1].usage_classification == "No License"
    assert table.raw_rows[3][4] == "Licence Fee (£)"


def test_ingest_rewinds_bytesio(credit_log):
    """Byte buffers left at EOF are rewound before reading."""

    buffer = BytesIO(credit_log.read_bytes())
    buffer.read()

    table = ingest_table(buffer, filename="upload.xlsx")

    assert len(table.records) == 4


def test_ingest_skips_sheets_without_headers(make_workbook, credit_log_rows):
    path = make_workbook(
        "two_sheets.xlsx",
        {"Notes": [["Read me first"], ["Nothing to see"]], "Log": credit_log_rows},
    )

    table = ingest_table(path)

    assert table.sheet_name == "Log"
    assert len(table.records) == 4


def test_ingest_reports_missing_columns(make_workbook):
    path = make_workbook(
        "partial.xlsx",
        {"Log": [["Source", "Acknowledgement", "Page Number"], ["Alamy", "Jane Doe", 3]]},
    )

    with pytest.raises(MissingColumns) as excinfo:
        ingest_table(path)

    assert excinfo.value.missing == ["usage classification", "licence fee"]
    assert '"usage classification", "licence fee"' in str(excinfo.value)
    assert isinstance(excinfo.value, ValueError)


def test_ingest_without_header_reports_every_label(make_workbook):
    path = make_workbook("junk.xlsx", {"Sheet1": [["a", "b"], ["c", "d"]]})

    with pytest.raises(MissingColumns) as excinfo:
        ingest_table(path)

    assert len(excinfo.value.missing) == 5


def test_ingest_raises_when_no_rows_qualify(make_workbook):
    path = make_workbook(
        "empty_log.xlsx",
        {
            "Log": [
                ["Source", "Acknowledgement", "Page Number", "Usage Classification", "Licence Fee"],
                ["Alamy", None, 3, None, None],
            ]
        },
    )

    with pytest.raises(NoDataRows):
        ingest_table(path)


def test_ingest_csv(tmp_path):
    path = tmp_path / "log.csv"
    path.write_text(
        "Source,Acknowledgement,Page Number,Usage Classification,Licence Fee (GBP)\n"
        "Alamy,Jane Doe / Alamy,7,License,20\n",
        encoding="utf-8",
    )

    table = ingest_table(path)

    assert table.isbn is None
    assert table.records[0].acknowledgement == "Jane Doe / Alamy"
    assert table.records[0].original_row_index == 1


def test_unsupported_extension(tmp_path):
    path = tmp_path / "log.txt"
    path.write_text("Source\tAcknowledgement\n", encoding="utf-8")

    with pytest.raises(UnsupportedFileType):
        read_workbook_rows(path)


def test_find_header_row_maps_columns_in_any_order():
    rows = [
        ["Licence Fee", "Page Number (print)", "ACKNOWLEDGEMENT", "Usage Classification", " Source "],
    ]

    header = find_header_row(rows)

    assert header.row_index == 0
    assert header.columns == {
        "source": 4,
        "acknowledgement": 2,
        "page_number": 1,
        "usage_classification": 3,
        "license_fee": 0,
    }


def test_find_metadata_takes_first_nonempty_neighbour():
    rows = [["ISBN:", "", "ignored"], ["Book Title", "Moths"], ["isbn", "123"]]

    assert find_metadata(rows) == ("123", "Moths")
    assert find_metadata([["Source", "Acknowledgement"]]) == (None, None)


def test_xls_workbooks_are_read_with_xlrd(tmp_path, monkeypatch):
    """Legacy .xls logs go through the xlrd engine, which ships as a dependency."""

    assert importlib.util.find_spec("xlrd") is not None
    seen = {}

    def fake_read_excel(source, **kwargs):
        seen.update(kwargs)
        return {"Log": pd.DataFrame(CREDIT_ROWS, dtype=object)}

    monkeypatch.setattr(ingest.pd, "read_excel", fake_read_excel)
    path = tmp_path / "legacy.xls"
    path.write_bytes(b"\xd0\xcf\x11\xe0")

    table = ingest_table(path)

    assert seen["engine"] == "xlrd"
    assert [(r.source, r.acknowledgement) for r in table.records] == [("Alamy", "Jane Doe")]


def test_xlsx_workbooks_are_read_with_openpyxl(credit_log, monkeypatch):
    engines = []
    read_excel = pd.read_excel

    def spy(source, **kwargs):
        engines.append(kwargs.get("engine"))
        return read_excel(source, **kwargs)

    monkeypatch.setattr(ingest.pd, "read_excel", spy)

    ingest_table(credit_log)

    assert engines == ["openpyxl"]
