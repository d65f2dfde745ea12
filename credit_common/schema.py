from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Mapping, Sequence

_PAREN_SUFFIX_RE = re.compile(r"\s*\(.*\)\s*$")


def clean_header_name(name) -> str:
    """
    Normalize a spreadsheet header cell for label matching.

    Lowercases, trims and drops a trailing parenthetical such as the currency
    marker in "Licence Fee (£)". Non-string cells never match a label, so they
    collapse to an empty string.
    """
    if not isinstance(name, str):
        return ""
    return _PAREN_SUFFIX_RE.sub("", name.lower().strip())


# canonical field -> cleaned header label
CREDIT_COLUMNS: Mapping[str, str] = {
    "source": "source",
    "acknowledgement": "acknowledgement",
    "page_number": "page number",
    "usage_classification": "usage classification",
    "license_fee": "licence fee",
}

# A row is treated as the header once these labels are present.
HEADER_ANCHOR_FIELDS: Sequence[str] = ("source", "acknowledgement")

METADATA_LABELS: Mapping[str, str] = {"isbn": "isbn", "title": "title"}
METADATA_SEARCH_DEPTH = 5


@dataclass(frozen=True)
class CreditRecord:
    """One accepted credit row of the ingested sheet."""

    source: str
    acknowledgement: str
    page_number: str = ""
    usage_classification: str = ""
    license_fee: str = ""
    original_row_index: int = -1

    def key(self) -> str:
        """Key used to match the same credit across the cover/main partitions."""

        return f"{self.source}|{self.acknowledgement}"


@dataclass(frozen=True)
class Flag:
    """Advisory data-quality note attached to a record."""

    record: CreditRecord
    reason: str

    @property
    def source(self) -> str:
        return self.record.source

    @property
    def acknowledgement(self) -> str:
        return self.record.acknowledgement

    @property
    def page_number(self) -> str:
        return self.record.page_number

    @property
    def original_row_index(self) -> int:
        return self.record.original_row_index

    def as_dict(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "acknowledgement": self.acknowledgement,
            "page_number": self.page_number,
            "original_row_index": self.original_row_index,
            "reason": self.reason,
        }


STATUS_PROCESSING = "processing"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class ImageItem:
    """An image queued for description; `label` identifies it across retries."""

    label: str
    image_bytes: bytes
    mime_type: str
    associated_text: str = ""


@dataclass(frozen=True)
class DescriptionResult:
    item: ImageItem
    description: str
    status: str = STATUS_PROCESSING

    @property
    def label(self) -> str:
        return self.item.label

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS
