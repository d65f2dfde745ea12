"""
Renderers for the reconciled credit list.

`format_tsv`, `narrative_runs` and `format_narrative` are pure; the `write_*`
helpers produce the Word document and the Excel workbooks handed to
production.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

from credit_common.normalize import CreditReport, locale_sort_key
from credit_common.schema import CreditRecord, DescriptionResult, Flag

LOGGER = logging.getLogger(__name__)

TSV_HEADER = "Source\tAcknowledgement\tPage Number\n"
HEADER_COLOR = "#D3D3D3"
HIGHLIGHT_COLOR = "#FEE2E2"
# Cell text is written verbatim: no "=..." formulas, no auto hyperlinks.
WORKBOOK_OPTIONS = {"strings_to_formulas": False, "strings_to_urls": False}


@dataclass(frozen=True)
class Run:
    text: str
    bold: bool = False


def format_tsv(report: CreditReport) -> str:
    """Flatten the report into tab-separated text (clipboard format)."""

    content = TSV_HEADER
    if report.cover:
        content += "--- Cover Credits ---\n"
        content += "\n".join(f"{r.source}\t{r.acknowledgement}\t{r.page_number}" for r in report.cover) + "\n"
    if report.non_cover:
        content += "--- Main Content Credits ---\n"
        content += "\n".join(f"{r.source}\t{r.acknowledgement}\t{r.page_number}" for r in report.non_cover) + "\n"
    if report.removed_duplicates:
        content += "\n--- Removed Duplicates ---\n"
        content += (
            "\n".join(
                f"{r.source}\t{r.acknowledgement}\t(Page: {r.page_number})" for r in report.removed_duplicates
            )
            + "\n"
        )
    if report.cross_category:
        content += "\n--- Note: Acknowledgements in Both Cover and Main Content ---\n"
        content += "\n".join(f"{r.source}\t{r.acknowledgement}" for r in report.cross_category) + "\n"
    return content


def narrative_runs(records: Iterable[CreditRecord]) -> List[Run]:
    """
    Group acknowledgements by source (first-appearance order) into styled runs.

    Renders as "Source (ack1, ack2); Source2 (ack3)." with the source name,
    the parentheses and the separators in bold.
    """

    grouped: Dict[str, List[str]] = {}
    for record in records:
        grouped.setdefault(record.source, []).append(record.acknowledgement)

    runs: List[Run] = []
    sources = list(grouped)
    for index, source in enumerate(sources):
        runs.append(Run(source, bold=True))
        runs.append(Run(" "))
        runs.append(Run("(", bold=True))
        runs.append(Run(", ".join(grouped[source])))
        runs.append(Run(")", bold=True))
        if index == len(sources) - 1:
            runs.append(Run("."))
        else:
            runs.append(Run("; ", bold=True))
    return runs


def format_narrative(records: Iterable[CreditRecord], marker: str = "**") -> str:
    """Render narrative runs as text, wrapping bold stretches in `marker`."""

    parts: List[str] = []
    buffer: List[str] = []
    bold = False
    for run in narrative_runs(records):
        if buffer and run.bold != bold:
            text = "".join(buffer)
            parts.append(f"{marker}{text}{marker}" if bold else text)
            buffer = []
        bold = run.bold
        buffer.append(run.text)
    if buffer:
        text = "".join(buffer)
        parts.append(f"{marker}{text}{marker}" if bold else text)
    return "".join(parts)


def sanitize_filename(name: str) -> str:
    sanitized = re.sub(r"\s+", "_", name)
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", sanitized)


def export_filename(
    prefix: str,
    extension: str,
    isbn: Optional[str] = None,
    title: Optional[str] = None,
    default_stem: Optional[str] = None,
) -> str:
    """Build "<prefix>_<isbn>_<title>.<ext>" when both metadata values are known."""

    extension = extension.lstrip(".")
    if isbn and title:
        return f"{prefix}_{isbn}_{sanitize_filename(title)}.{extension}"
    return f"{default_stem or prefix}.{extension}"


def _add_runs(paragraph, runs: Sequence[Run]) -> None:
    for run in runs:
        docx_run = paragraph.add_run(run.text)
        if run.bold:
            docx_run.bold = True


def write_word_document(
    report: CreditReport,
    path: Path,
    flags: Sequence[Flag] = (),
    isbn: Optional[str] = None,
    title: Optional[str] = None,
) -> Path:
    """Write the grouped narrative credits (and any flags) as a .docx file."""

    document = Document()
    heading = document.add_heading("Acknowledgements", level=0)
    heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
    if isbn or title:
        meta = document.add_paragraph(" | ".join(v for v in (isbn, title) if v))
        meta.alignment = WD_ALIGN_PARAGRAPH.CENTER
    document.add_paragraph("")

    if flags:
        document.add_heading("Data Quality Warning", level=2)
        document.add_paragraph(
            "The following entries were flagged as potential errors or anomalies. Please review them carefully:"
        )
        for flag in flags:
            item = document.add_paragraph(style="List Bullet")
            _add_runs(
                item,
                [
                    Run("Source: ", bold=True),
                    Run(f"{flag.source}, "),
                    Run("Acknowledgement: ", bold=True),
                    Run(f"{flag.acknowledgement}, "),
                    Run("Page: ", bold=True),
                    Run(f"{flag.page_number}. "),
                ],
            )
            item.add_run().add_break()
            item.add_run("Reason: ").bold = True
            item.add_run(flag.reason).italic = True
        document.add_paragraph("")

    cover_runs = narrative_runs(report.cover)
    if cover_runs:
        paragraph = document.add_paragraph()
        _add_runs(paragraph, [Run("Cover: ", bold=True), *cover_runs])

    main_runs = narrative_runs(report.non_cover)
    if main_runs:
        if cover_runs:
            document.add_paragraph("")
        paragraph = document.add_paragraph()
        _add_runs(paragraph, main_runs)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(path))
    LOGGER.info("Wrote Word document to %s", path)
    return path


def _write_sheet(
    path: Path,
    sheet_name: str,
    headers: Optional[Sequence[str]],
    rows: Sequence[Sequence[str]],
    widths: Sequence[int] = (),
    highlight_rows: Iterable[int] = (),
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    highlight = set(highlight_rows)

    with pd.ExcelWriter(path, engine="xlsxwriter", engine_kwargs={"options": WORKBOOK_OPTIONS}) as writer:
        workbook = writer.book
        fmt_header = workbook.add_format({"bold": True, "bg_color": HEADER_COLOR, "border": 1})
        fmt_flagged = workbook.add_format({"bg_color": HIGHLIGHT_COLOR})

        worksheet = workbook.add_worksheet(sheet_name)
        writer.sheets[sheet_name] = worksheet
        for col, width in enumerate(widths):
            worksheet.set_column(col, col, width)

        offset = 0
        if headers is not None:
            for col, name in enumerate(headers):
                worksheet.write(0, col, name, fmt_header)
            offset = 1

        # Cell formats override row formats, so flagged cells carry the fill themselves.
        for row_index, row in enumerate(rows):
            fmt = fmt_flagged if row_index in highlight else None
            if fmt is not None:
                worksheet.set_row(row_index + offset, None, fmt)
            for col, value in enumerate(row):
                worksheet.write(row_index + offset, col, value, fmt)

    LOGGER.info("Wrote %d rows to %s [%s]", len(rows), path, sheet_name)
    return path


def write_sorted_original(records: Iterable[CreditRecord], path: Path) -> Path:
    """All ingested records (duplicates included) sorted by source, then acknowledgement."""

    ordered = sorted(
        records,
        key=lambda r: (locale_sort_key(r.source), locale_sort_key(r.acknowledgement)),
    )
    rows = [[r.source, r.acknowledgement, r.page_number] for r in ordered]
    return _write_sheet(
        path,
        "Sorted Original Credits",
        ["Source", "Acknowledgement", "Page Number"],
        rows,
        widths=(40, 60, 15),
    )


def write_merged_credits(report: CreditReport, results: Sequence[DescriptionResult], path: Path) -> Path:
    """Place the credit list and the image descriptions side by side, aligned by row position."""

    credits = list(report.unique_records)
    rows: List[List[str]] = []
    for index in range(max(len(credits), len(results))):
        credit = credits[index] if index < len(credits) else None
        image = results[index] if index < len(results) else None
        rows.append(
            [
                credit.acknowledgement if credit else "",
                credit.page_number if credit else "",
                image.label if image else "",
                image.description if image else "",
            ]
        )
    return _write_sheet(
        path,
        "Merged Credits",
        ["Acknowledgement", "Page Number", "Image Filename", "AI Description"],
        rows,
        widths=(50, 15, 40, 80),
    )


def write_image_descriptions(results: Sequence[DescriptionResult], path: Path) -> Path:
    """Export successful descriptions only."""

    rows = [[r.label, r.description] for r in results if r.ok]
    if not rows:
        raise ValueError("No successful image descriptions to export.")
    return _write_sheet(path, "Image Descriptions", ["Filename", "Description"], rows, widths=(40, 80))


def write_annotated_log(raw_rows: Sequence[Sequence[str]], path: Path, highlight_rows: Iterable[int] = ()) -> Path:
    """Write the raw sheet back unchanged, shading the given 0-based row positions."""

    width = max((len(row) for row in raw_rows), default=0)
    padded = [list(row) + [""] * (width - len(row)) for row in raw_rows]
    return _write_sheet(path, "Original Log", None, padded, highlight_rows=highlight_rows)


__all__ = [
    "Run",
    "format_tsv",
    "narrative_runs",
    "format_narrative",
    "sanitize_filename",
    "export_filename",
    "write_word_document",
    "write_sorted_original",
    "write_merged_credits",
    "write_image_descriptions",
    "write_annotated_log",
]
