"""
Credit record model, normalization/deduplication engine and validator shared
by ingestion, export and the command line.
"""

from .errors import (  # noqa: F401
    CreditsError,
    MissingColumns,
    NoDataRows,
    RateLimited,
    TransientCallFailure,
    UnknownError,
    UnsupportedFileType,
)

from .schema import (  # noqa: F401
    CREDIT_COLUMNS,
    STATUS_ERROR,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    CreditRecord,
    DescriptionResult,
    Flag,
    ImageItem,
    clean_header_name,
)

from .normalize import (  # noqa: F401
    CreditReport,
    GroupResult,
    build_credit_report,
    find_cross_duplicates,
    is_cover_page,
    locale_sort_key,
    normalize_acknowledgement,
    partition_records,
    process_group,
)

from .validate import (  # noqa: F401
    flagged_row_indices,
    parse_fee,
    validate_records,
)

__all__ = [
    "CreditsError",
    "MissingColumns",
    "NoDataRows",
    "RateLimited",
    "TransientCallFailure",
    "UnknownError",
    "UnsupportedFileType",
    "CREDIT_COLUMNS",
    "STATUS_ERROR",
    "STATUS_PROCESSING",
    "STATUS_SUCCESS",
    "CreditRecord",
    "DescriptionResult",
    "Flag",
    "ImageItem",
    "clean_header_name",
    "CreditReport",
    "GroupResult",
    "build_credit_report",
    "find_cross_duplicates",
    "is_cover_page",
    "locale_sort_key",
    "normalize_acknowledgement",
    "partition_records",
    "process_group",
    "flagged_row_indices",
    "parse_fee",
    "validate_records",
]
