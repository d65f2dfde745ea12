#!/usr/bin/env python3
"""
Compile a book's image credit log into production-ready outputs.

Sub-commands
------------
credits   Ingest a credit log, deduplicate it per cover/main content, validate
          licence fees and write TSV, Word and Excel outputs.
describe  Extract images from a contact sheet (PDF/DOCX) or take image files
          directly and describe each one with the vision model.
merge     Run both and write the credits next to the image descriptions.

Examples
--------
  python compile_credits.py credits log.xlsx --out-dir out
  python compile_credits.py credits log.xlsx --ai-check -v
  python compile_credits.py describe contact_sheet.pdf --retries 1
  python compile_credits.py merge log.xlsx img_001.jpg img_002.jpg
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from credit_ai.config import load_prompt_config, load_settings
from credit_ai.describer import Progress, make_async_describer, run_describe_all
from credit_ai.ollama_client import OllamaVisionClient
from credit_common.errors import CreditsError, UnknownError
from credit_common.normalize import CreditReport, build_credit_report
from credit_common.schema import DescriptionResult, Flag, ImageItem
from credit_common.validate import flagged_row_indices
from credit_data.contact_sheet import extract_contact_sheet, load_image_files
from credit_data.export import (
    export_filename,
    format_tsv,
    write_annotated_log,
    write_image_descriptions,
    write_merged_credits,
    write_sorted_original,
    write_word_document,
)
from credit_data.ingest import IngestedTable, ingest_table

LOGGER = logging.getLogger("compile_credits")
CONTACT_SHEET_SUFFIXES = {".pdf", ".docx"}


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def build_client(config_path: Optional[Path]) -> OllamaVisionClient:
    settings = load_settings()
    client = OllamaVisionClient.from_settings(settings)
    prompt_config = load_prompt_config(config_path) if config_path else load_prompt_config()
    if not settings.preferred_vendors:
        client.preferred_vendors = list(prompt_config["preferred_vendors"])
    client.describe_prompt = prompt_config["describe_prompt"]
    return client


def compile_credit_report(
    input_path: Path,
    client: Optional[OllamaVisionClient] = None,
) -> Tuple[IngestedTable, CreditReport, List[Flag]]:
    """Ingest and process the credit log; AI flags are appended when a client is given."""

    table = ingest_table(input_path)
    report = build_credit_report(table.records)
    flags: List[Flag] = list(report.validation_flags)
    if client is not None:
        LOGGER.info("Running AI anomaly check on %d unique records", len(report.unique_records))
        try:
            flags.extend(client.classify_anomalies(list(report.unique_records)))
        except CreditsError as exc:
            LOGGER.warning("AI anomaly check failed, continuing with rule-based flags only: %s", exc)
    return table, report, flags


def write_credit_outputs(
    table: IngestedTable,
    report: CreditReport,
    flags: Sequence[Flag],
    out_dir: Path,
) -> List[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    tsv_path = out_dir / export_filename("Credits", "tsv", table.isbn, table.title, default_stem="Acknowledgements")
    tsv_path.write_text(format_tsv(report), encoding="utf-8")
    LOGGER.info("Wrote TSV to %s", tsv_path)
    written.append(tsv_path)

    written.append(
        write_word_document(
            report,
            out_dir / export_filename("Credits", "docx", table.isbn, table.title, default_stem="Acknowledgements"),
            flags=flags,
            isbn=table.isbn,
            title=table.title,
        )
    )
    written.append(
        write_sorted_original(
            report.records,
            out_dir / export_filename("Sorted_Original_Credits", "xlsx", table.isbn, table.title),
        )
    )
    written.append(
        write_annotated_log(
            table.raw_rows,
            out_dir / export_filename("Original_Log", "xlsx", table.isbn, table.title),
            highlight_rows=flagged_row_indices(report.validation_flags),
        )
    )
    return written


def collect_images(inputs: Sequence[Path]) -> List[ImageItem]:
    items: List[ImageItem] = []
    direct: List[Path] = []
    for path in inputs:
        if path.suffix.lower() in CONTACT_SHEET_SUFFIXES:
            items.extend(extract_contact_sheet(path))
        else:
            direct.append(path)
    items.extend(load_image_files(direct))
    return items


def _log_progress(progress: Progress, _results: List[DescriptionResult]) -> None:
    LOGGER.info("Described %d/%d images", progress.current, progress.total)


def describe_images(
    inputs: Sequence[Path],
    client: OllamaVisionClient,
    concurrency: int,
    retries: int,
) -> List[DescriptionResult]:
    items = collect_images(inputs)
    if not items:
        LOGGER.warning("No images found in %s", ", ".join(str(p) for p in inputs))
        return []
    results, rounds = run_describe_all(
        items,
        make_async_describer(client.describe_image),
        concurrency=concurrency,
        retries=retries,
        on_progress=_log_progress,
    )
    failed = sum(1 for r in results if not r.ok)
    LOGGER.info("Image descriptions: %d ok, %d failed, %d retry rounds", len(results) - failed, failed, rounds)
    return results


def cmd_credits(args: argparse.Namespace) -> int:
    client = build_client(args.config) if args.ai_check else None
    table, report, flags = compile_credit_report(Path(args.input), client)
    for name, count in report.summary().items():
        print(f"{name:>20}: {count}")
    for flag in flags:
        print(f"[FLAG] row {flag.original_row_index + 1}: {flag.source} / {flag.acknowledgement} -> {flag.reason}")
    write_credit_outputs(table, report, flags, Path(args.out_dir))
    return 0


def cmd_describe(args: argparse.Namespace) -> int:
    client = build_client(args.config)
    concurrency = args.concurrency or load_settings().describe_concurrency
    results = describe_images([Path(p) for p in args.inputs], client, concurrency, args.retries)
    if not results:
        return 1
    if not any(r.ok for r in results):
        LOGGER.error("No successful image descriptions to export.")
        return 2
    out_dir = Path(args.out_dir)
    write_image_descriptions(results, out_dir / "Image_Analysis_Results.xlsx")
    return 0 if all(r.ok for r in results) else 2


def cmd_merge(args: argparse.Namespace) -> int:
    client = build_client(args.config)
    table, report, flags = compile_credit_report(Path(args.credits))
    concurrency = args.concurrency or load_settings().describe_concurrency
    results = describe_images([Path(p) for p in args.images], client, concurrency, args.retries)
    out_dir = Path(args.out_dir)
    write_credit_outputs(table, report, flags, out_dir)
    write_merged_credits(
        report,
        results,
        out_dir / export_filename("Merged_Credits", "xlsx", table.isbn, table.title, default_stem="Merged_Credits_Data"),
    )
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity (repeatable).")
    common.add_argument("--config", type=Path, help="YAML prompt config (preferred vendors, describe prompt).")
    common.add_argument("--out-dir", default="output", help="Directory for generated files")

    parser = argparse.ArgumentParser(
        description="Deduplicate, validate and export image credit logs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command")

    credits = sub.add_parser("credits", parents=[common], help="Process a credit log spreadsheet.")
    credits.add_argument("input", help="Credit log (.xlsx, .xls or .csv)")
    credits.add_argument("--ai-check", action="store_true", help="Also run the AI anomaly check")
    credits.set_defaults(func=cmd_credits)

    describe = sub.add_parser("describe", parents=[common], help="Describe images from contact sheets or image files.")
    describe.add_argument("inputs", nargs="+", help="Contact sheets (.pdf/.docx) or image files")
    describe.add_argument("--concurrency", type=int, help="Concurrent description calls (default from env, 2)")
    describe.add_argument("--retries", type=int, default=0, help="Retry rounds for failed images")
    describe.set_defaults(func=cmd_describe)

    merge = sub.add_parser("merge", parents=[common], help="Write credits and image descriptions side by side.")
    merge.add_argument("credits", help="Credit log (.xlsx, .xls or .csv)")
    merge.add_argument("images", nargs="+", help="Contact sheets (.pdf/.docx) or image files")
    merge.add_argument("--concurrency", type=int, help="Concurrent description calls (default from env, 2)")
    merge.add_argument("--retries", type=int, default=0, help="Retry rounds for failed images")
    merge.set_defaults(func=cmd_merge)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    configure_logging(args.verbose)
    try:
        return args.func(args)
    except CreditsError as exc:
        LOGGER.error("%s", exc)
        return 1
    except Exception as exc:
        wrapped = UnknownError("An unexpected error occurred while compiling credits.")
        LOGGER.exception("%s (%s)", wrapped, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
