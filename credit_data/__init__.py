"""
Ingestion, contact-sheet extraction and export helpers for credit logs.
"""

from .ingest import (  # noqa: F401
    HeaderLocation,
    IngestedTable,
    extract_records,
    find_header_row,
    find_metadata,
    ingest_table,
    read_workbook_rows,
)

from .export import (  # noqa: F401
    Run,
    export_filename,
    format_narrative,
    format_tsv,
    narrative_runs,
    write_annotated_log,
    write_image_descriptions,
    write_merged_credits,
    write_sorted_original,
    write_word_document,
)

from .contact_sheet import (  # noqa: F401
    extract_contact_sheet,
    load_image_files,
    page_label_from_text,
)

__all__ = [
    "HeaderLocation",
    "IngestedTable",
    "extract_records",
    "find_header_row",
    "find_metadata",
    "ingest_table",
    "read_workbook_rows",
    "Run",
    "export_filename",
    "format_narrative",
    "format_tsv",
    "narrative_runs",
    "write_annotated_log",
    "write_image_descriptions",
    "write_merged_credits",
    "write_sorted_original",
    "write_word_document",
    "extract_contact_sheet",
    "load_image_files",
    "page_label_from_text",
]
