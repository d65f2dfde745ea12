from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Sequence, Tuple

from .schema import CreditRecord, Flag
from .validate import validate_records

LOGGER = logging.getLogger(__name__)

COVER_EXACT_KEYWORDS: Tuple[str, ...] = ("c",)
# Plain substring matches: a label such as "fcg" also counts as a cover.
COVER_PARTIAL_KEYWORDS: Tuple[str, ...] = (
    "cov",
    "cover",
    "cvr",
    "fc",  # front cover
    "bc",  # back cover
    "ifc",  # inside front cover
    "ibc",  # inside back cover
)


def normalize_acknowledgement(acknowledgement: str, source: str) -> str:
    """
    Strip a redundant "/ Source" suffix or "Source /" prefix from the credit text.

    The source is matched literally and case-insensitively. Suffixes win over
    prefixes; at most one of them is removed.
    """

    cleaned_ack = (acknowledgement or "").strip()
    cleaned_source = (source or "").strip()
    if not cleaned_source:
        return cleaned_ack

    escaped = re.escape(cleaned_source)
    suffix_re = re.compile(rf"\s*/\s*{escaped}$", re.IGNORECASE)
    prefix_re = re.compile(rf"^{escaped}\s*/\s*", re.IGNORECASE)

    result = cleaned_ack
    if suffix_re.search(result):
        result = suffix_re.sub("", result, count=1)
    elif prefix_re.search(result):
        result = prefix_re.sub("", result, count=1)
    return result.strip()


def is_cover_page(page_number: str) -> bool:
    """Return True when the page label denotes cover matter (an empty label counts)."""

    normalized = (page_number or "").strip().lower()
    if normalized == "":
        return True
    if normalized in COVER_EXACT_KEYWORDS:
        return True
    return any(keyword in normalized for keyword in COVER_PARTIAL_KEYWORDS)


def partition_records(records: Iterable[CreditRecord]) -> Tuple[List[CreditRecord], List[CreditRecord]]:
    """Split records into (cover, non_cover), keeping input order in both."""

    cover: List[CreditRecord] = []
    non_cover: List[CreditRecord] = []
    for record in records:
        if is_cover_page(record.page_number):
            cover.append(record)
        else:
            non_cover.append(record)
    return cover, non_cover


def _primary_weight(ch: str) -> Tuple[int, str]:
    # Root collation order: spaces, punctuation and symbols, then digits, then letters.
    category = unicodedata.category(ch)[0]
    if category == "L":
        return 2, ch
    if category == "N":
        return 1, ch
    return 0, ch


def locale_sort_key(text: str) -> Tuple[Tuple[Tuple[int, str], ...], str, str]:
    """
    Collation-style sort key approximating a root-locale string comparison.

    Compares accent-stripped casefolded text first, then accents, then case
    with lowercase ordered before uppercase. Punctuation and symbols sort
    before digits, digits before letters. Within a class, characters still
    compare by code point, so symbol-to-symbol order can differ from ICU.
    """

    decomposed = unicodedata.normalize("NFKD", text or "")
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    primary = tuple(_primary_weight(ch) for ch in base.casefold())
    return primary, decomposed.casefold(), (text or "").swapcase()


@dataclass(frozen=True)
class GroupResult:
    unique_records: Tuple[CreditRecord, ...]
    duplicates: Tuple[CreditRecord, ...]


def process_group(records: Sequence[CreditRecord]) -> GroupResult:
    """
    Normalize, group by source, sort and deduplicate one partition.

    Duplicates are exact repeats of a normalized acknowledgement within the
    same source; the same text under another source is kept. Sorting is
    stable so tied acknowledgements keep their input order.
    """

    grouped: Dict[str, List[CreditRecord]] = {}
    for record in records:
        cleaned = replace(
            record,
            acknowledgement=normalize_acknowledgement(record.acknowledgement, record.source),
        )
        grouped.setdefault(cleaned.source, []).append(cleaned)

    unique_records: List[CreditRecord] = []
    duplicates: List[CreditRecord] = []
    for source in sorted(grouped, key=locale_sort_key):
        group = sorted(grouped[source], key=lambda r: locale_sort_key(r.acknowledgement))
        seen = set()
        for record in group:
            if record.acknowledgement in seen:
                duplicates.append(record)
                continue
            seen.add(record.acknowledgement)
            unique_records.append(record)

    return GroupResult(unique_records=tuple(unique_records), duplicates=tuple(duplicates))


def find_cross_duplicates(
    cover_unique: Iterable[CreditRecord],
    non_cover_unique: Iterable[CreditRecord],
) -> List[CreditRecord]:
    """Return main-content records whose source/acknowledgement also appears on the cover."""

    cover_keys = {record.key() for record in cover_unique}
    return [record for record in non_cover_unique if record.key() in cover_keys]


@dataclass(frozen=True)
class CreditReport:
    records: Tuple[CreditRecord, ...]
    cover: Tuple[CreditRecord, ...]
    non_cover: Tuple[CreditRecord, ...]
    removed_duplicates: Tuple[CreditRecord, ...]
    cross_category: Tuple[CreditRecord, ...]
    validation_flags: Tuple[Flag, ...]

    @property
    def unique_records(self) -> Tuple[CreditRecord, ...]:
        return self.cover + self.non_cover

    def summary(self) -> Dict[str, int]:
        return {
            "ingested": len(self.records),
            "cover": len(self.cover),
            "main_content": len(self.non_cover),
            "removed_duplicates": len(self.removed_duplicates),
            "cross_category": len(self.cross_category),
            "validation_flags": len(self.validation_flags),
        }


def build_credit_report(records: Sequence[CreditRecord]) -> CreditReport:
    """Run partitioning, per-partition dedupe, reconciliation and validation."""

    cover, non_cover = partition_records(records)
    cover_result = process_group(cover)
    non_cover_result = process_group(non_cover)

    removed = sorted(
        [*cover_result.duplicates, *non_cover_result.duplicates],
        key=lambda r: locale_sort_key(r.source),
    )
    cross = find_cross_duplicates(cover_result.unique_records, non_cover_result.unique_records)
    flags = validate_records(records)

    report = CreditReport(
        records=tuple(records),
        cover=cover_result.unique_records,
        non_cover=non_cover_result.unique_records,
        removed_duplicates=tuple(removed),
        cross_category=tuple(cross),
        validation_flags=tuple(flags),
    )
    LOGGER.debug("Credit report summary: %s", report.summary())
    return report
