from pathlib import Path

import pandas as pd
import pytest

CREDIT_LOG_ROWS = [
    ["ISBN", "9780000000001"],
    ["Title", "Birds of the World"],
    ["Prepared by", "Picture desk"],
    ["Source", "Acknowledgement", "Page Number", "Usage Classification", "Licence Fee (£)"],
    ["Getty Images", "John Smith / Getty Images", 12, "License", 45.5],
    ["Alamy", None, 13, None, None],
    ["Shutterstock", "Shutterstock", "FC", "No License", 0],
    ["Getty Images", "John Smith", 14, "License", -5],
    ["Alamy", "Jane Doe", "", "No License", None],
]


def write_workbook(path: Path, sheets) -> Path:
    with pd.ExcelWriter(path, engine="xlsxwriter") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, index=False, header=False)
    return path


@pytest.fixture
def credit_log(tmp_path) -> Path:
    return write_workbook(tmp_path / "credit_log.xlsx", {"Log": CREDIT_LOG_ROWS})


@pytest.fixture
def make_workbook(tmp_path):
    def _make(name, sheets):
        return write_workbook(tmp_path / name, sheets)

    return _make


@pytest.fixture
def credit_log_rows():
    return [list(row) for row in CREDIT_LOG_ROWS]
