import pandas as pd
import pytest
from docx import Document
from openpyxl import load_workbook

from credit_common.normalize import build_credit_report
from credit_common.schema import (
    STATUS_ERROR,
    STATUS_SUCCESS,
    CreditRecord,
    DescriptionResult,
    Flag,
    ImageItem,
)
from credit_data.export import (
    export_filename,
    format_narrative,
    format_tsv,
    narrative_runs,
    sanitize_filename,
    write_annotated_log,
    write_image_descriptions,
    write_merged_credits,
    write_sorted_original,
    write_word_document,
)


def rec(source, ack, page, row=0):
    return CreditRecord(source=source, acknowledgement=ack, page_number=page, original_row_index=row)


@pytest.fixture
def report():
    return build_credit_report(
        [
            rec("Getty Images", "John", "12", 1),
            rec("Alamy", "Jane", "C", 2),
            rec("Alamy", "Jane / Alamy", "15", 3),
            rec("Getty Images", "John", "14", 4),
        ]
    )


def test_format_tsv_sections(report):
    assert format_tsv(report) == (
        "Source\tAcknowledgement\tPage Number\n"
        "--- Cover Credits ---\n"
        "Alamy\tJane\tC\n"
        "--- Main Content Credits ---\n"
        "Alamy\tJane\t15\n"
        "Getty Images\tJohn\t12\n"
        "\n--- Removed Duplicates ---\n"
        "Getty Images\tJohn\t(Page: 14)\n"
        "\n--- Note: Acknowledgements in Both Cover and Main Content ---\n"
        "Alamy\tJane\n"
    )


def test_format_tsv_omits_empty_sections():
    report = build_credit_report([rec("Alamy", "Jane", "3")])

    assert format_tsv(report) == (
        "Source\tAcknowledgement\tPage Number\n--- Main Content Credits ---\nAlamy\tJane\t3\n"
    )


def test_narrative_groups_by_source_in_first_appearance_order():
    records = [rec("Getty", "A", "1"), rec("Alamy", "B", "2"), rec("Getty", "C", "3")]

    runs = narrative_runs(records)

    assert "".join(r.text for r in runs) == "Getty (A, C); Alamy (B)."
    assert [r.text for r in runs if r.bold] == ["Getty", "(", ")", "; ", "Alamy", "(", ")"]
    assert format_narrative(records) == "**Getty** **(**A, C**); Alamy** **(**B**)**."
    assert narrative_runs([]) == []


def test_export_filename():
    assert sanitize_filename("Birds of the World: Vol 2") == "Birds_of_the_World__Vol_2"
    assert export_filename("Credits", "docx", "978", "Birds of the World") == "Credits_978_Birds_of_the_World.docx"
    assert export_filename("Credits", "docx", None, "Birds", default_stem="Acknowledgements") == "Acknowledgements.docx"


def test_write_word_document(tmp_path, report):
    flag = Flag(record=rec("Alamy", "Jane", "15", 3), reason="Suspicious casing")
    path = write_word_document(report, tmp_path / "credits.docx", flags=[flag], isbn="978", title="Birds")

    texts = [p.text for p in Document(str(path)).paragraphs]

    assert texts[0] == "Acknowledgements"
    assert "978 | Birds" in texts
    assert "Data Quality Warning" in texts
    assert any("Suspicious casing" in t and "Source: Alamy" in t for t in texts)
    assert "Cover: Alamy (Jane)." in texts
    assert "Alamy (Jane); Getty Images (John)." in texts


def test_write_sorted_original(tmp_path, report):
    path = write_sorted_original(report.records, tmp_path / "sorted.xlsx")

    frame = pd.read_excel(path, sheet_name="Sorted Original Credits", dtype=str).fillna("")

    assert list(frame.columns) == ["Source", "Acknowledgement", "Page Number"]
    assert frame.values.tolist() == [
        ["Alamy", "Jane", "C"],
        ["Alamy", "Jane / Alamy", "15"],
        ["Getty Images", "John", "12"],
        ["Getty Images", "John", "14"],
    ]


def test_write_merged_credits_pads_shorter_side(tmp_path, report):
    results = [
        DescriptionResult(
            item=ImageItem(label="img_001.jpg", image_bytes=b"", mime_type="image/jpeg"),
            description="A heron.",
            status=STATUS_SUCCESS,
        )
    ]

    path = write_merged_credits(report, results, tmp_path / "merged.xlsx")
    frame = pd.read_excel(path, sheet_name="Merged Credits", dtype=str).fillna("")

    assert list(frame.columns) == ["Acknowledgement", "Page Number", "Image Filename", "AI Description"]
    assert frame.values.tolist() == [
        ["Jane", "C", "img_001.jpg", "A heron."],
        ["Jane", "15", "", ""],
        ["John", "12", "", ""],
    ]


def test_write_image_descriptions_keeps_successes_only(tmp_path):
    item = ImageItem(label="12", image_bytes=b"", mime_type="image/png")
    results = [
        DescriptionResult(item=item, description="A kestrel.", status=STATUS_SUCCESS),
        DescriptionResult(item=item, description="Image description failed: boom", status=STATUS_ERROR),
    ]

    path = write_image_descriptions(results, tmp_path / "images.xlsx")
    frame = pd.read_excel(path, sheet_name="Image Descriptions", dtype=str)

    assert frame.values.tolist() == [["12", "A kestrel."]]

    with pytest.raises(ValueError):
        write_image_descriptions(results[1:], tmp_path / "none.xlsx")


def test_write_annotated_log_highlights_rows(tmp_path):
    raw_rows = [["Source", "Acknowledgement"], ["Alamy", "Jane"], ["Getty", ""]]

    path = write_annotated_log(raw_rows, tmp_path / "log.xlsx", highlight_rows={1})
    sheet = load_workbook(path)["Original Log"]

    assert sheet["A1"].value == "Source"
    assert sheet["B2"].value == "Jane"
    assert sheet["A2"].fill.fgColor.rgb.endswith("FEE2E2")
    assert not (sheet["A3"].fill.fgColor.rgb or "").endswith("FEE2E2")
