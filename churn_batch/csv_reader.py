"""
CSV intake: header validation and row splitting.

Header validation always completes before any data line is read; a file
missing required columns is rejected as a whole.
"""

import logging
from typing import List

from .errors import EmptyFileError, InvalidEncodingError, MissingColumnsError
from .models import RawRow

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = [
    "customer_id",
    "plan",
    "last_login",
    "avg_session_duration",
    "billing_status",
    "monthly_revenue",
    "feature_usage_count",
    "support_tickets",
]

OPTIONAL_COLUMNS = ["feature_adopted", "cancellation_reason"]

# Key under which each RawRow carries its 1-based data-row number
ROW_NUMBER_KEY = "__row__"


def read_text(data: bytes | str) -> str:
    """
    Decode uploaded bytes (UTF-8, BOM tolerated).

    Raises:
        InvalidEncodingError: If the bytes are not valid UTF-8
    """
    if isinstance(data, bytes):
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InvalidEncodingError(f"invalid byte at position {e.start}") from e
    return data.lstrip("\ufeff")


def _split_lines(text: str) -> List[str]:
    return text.strip().splitlines()


def _clean(cell: str) -> str:
    return cell.strip().replace('"', "")


def validate_headers(text: str, required: List[str] = REQUIRED_COLUMNS) -> List[str]:
    """
    Check the header line of a CSV document.

    Args:
        text: Decoded CSV content
        required: Column names that must be present

    Returns:
        Lower-cased header names, in file order

    Raises:
        EmptyFileError: If there is no data row after the header
        MissingColumnsError: Naming every absent required column
    """
    lines = _split_lines(text)
    if len(lines) < 2:
        raise EmptyFileError()

    headers = [_clean(h).lower() for h in lines[0].split(",")]
    missing = [col for col in required if col.lower() not in headers]
    if missing:
        raise MissingColumnsError(missing)

    found_optional = [col for col in OPTIONAL_COLUMNS if col in headers]
    if found_optional:
        logger.info("Optional columns found: %s", found_optional)
    return headers


def parse_rows(text: str) -> List[RawRow]:
    """
    Validate headers, then split data lines into raw rows.

    Lines whose value count differs from the header count are skipped
    with a warning. Each row records its data-row number under ROW_NUMBER_KEY.
    """
    headers = validate_headers(text)
    rows: List[RawRow] = []

    for index, line in enumerate(_split_lines(text)[1:], start=1):
        if not line.strip():
            continue
        values = [_clean(v) for v in line.split(",")]
        if len(values) != len(headers):
            logger.warning(
                "Row %d has %d values but expected %d, skipping",
                index, len(values), len(headers),
            )
            continue
        row = dict(zip(headers, values))
        row[ROW_NUMBER_KEY] = str(index)
        rows.append(row)

    logger.info("Parsed %d rows from CSV", len(rows))
    return rows
