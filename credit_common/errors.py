"""Error taxonomy shared by ingestion, the AI client and the CLI."""

from __future__ import annotations

from typing import Iterable, List


class CreditsError(Exception):
    """Base class for every error raised on purpose by this project."""


class MissingColumns(CreditsError, ValueError):
    """Raised when no sheet contains all of the required credit columns."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing: List[str] = list(missing)
        quoted = ", ".join(f'"{label}"' for label in self.missing)
        super().__init__(
            f"Could not find all required columns. Missing: {quoted}. Please check the Excel file headers."
        )


class NoDataRows(CreditsError, ValueError):
    """Raised when the header row was found but no credit rows follow it."""


class UnsupportedFileType(CreditsError, ValueError):
    """Raised before ingestion when the file extension/type is not handled."""


class RateLimited(CreditsError):
    """The AI collaborator rejected a call because of rate limiting."""


class TransientCallFailure(CreditsError):
    """A single AI call failed for a reason other than rate limiting."""


class UnknownError(CreditsError):
    """Fallback wrapper for unexpected exceptions surfaced to the user."""


__all__ = [
    "CreditsError",
    "MissingColumns",
    "NoDataRows",
    "UnsupportedFileType",
    "RateLimited",
    "TransientCallFailure",
    "UnknownError",
]
