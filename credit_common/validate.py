"""
Rule-based licence fee checks.

Two observed variants of the "no license" rule exist (fee must be zero vs.
fee must be empty). This module enforces the zero variant only: "0" and
"0.00" pass, an empty fee is flagged.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Set

from .schema import CreditRecord, Flag

_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_SEPARATORS_RE = re.compile(r"[-/]")


def normalize_usage(text: str) -> str:
    """Lowercase and treat hyphens/slashes as word separators."""

    return _SEPARATORS_RE.sub(" ", (text or "").lower())


def parse_fee(value: str) -> Optional[float]:
    """
    Parse the leading number of a fee cell, or None when there is none.

    "12.50 GBP" parses as 12.5; "£5", "" and "n/a" do not parse.
    """

    match = _LEADING_NUMBER_RE.match((value or "").strip())
    if not match:
        return None
    return float(match.group(0))


def check_record(record: CreditRecord) -> Optional[Flag]:
    """Return a Flag for the first violated rule, or None."""

    usage = normalize_usage(record.usage_classification)
    fee_value = (record.license_fee or "").strip()
    shown_fee = fee_value or "empty"

    if "no license" in usage:
        fee = parse_fee(fee_value)
        if fee is None or fee != 0:
            return Flag(
                record=record,
                reason=f'Usage is "{record.usage_classification}" but Licence Fee is "{shown_fee}", not 0.',
            )
    elif "license" in usage:
        fee = parse_fee(fee_value)
        if fee is None or fee <= 0:
            return Flag(
                record=record,
                reason=(
                    f'Usage is "{record.usage_classification}" but Licence Fee is "{shown_fee}", '
                    "which is not a positive number."
                ),
            )
    return None


def validate_records(records: Iterable[CreditRecord]) -> List[Flag]:
    """Validate usage classification against licence fee for every record."""

    flags: List[Flag] = []
    for record in records:
        flag = check_record(record)
        if flag is not None:
            flags.append(flag)
    return flags


def flagged_row_indices(flags: Iterable[Flag]) -> Set[int]:
    """Original sheet row positions of flagged records (for highlighting)."""

    return {flag.original_row_index for flag in flags if flag.original_row_index >= 0}
