"""Logical timestamps carried in EDI file names.

Recognized (first match wins, scanning left to right):
    YYYYMMDDHHMMSS   catalog_20240101093000.csv
    13-digit epoch   catalog_1704067200000.csv   (milliseconds)
    10-digit epoch   catalog_1704067200.csv      (seconds)
    YYYYMMDD         orders_20240101.csv
All results are UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

_DIGIT_RUN = re.compile(r"(?<!\d)(\d{14}|\d{13}|\d{10}|\d{8})(?!\d)")

STAMP_FORMAT = "%Y%m%d%H%M%S"


def _parse_digits(digits: str) -> datetime | None:
    try:
        if len(digits) == 14:
            return datetime.strptime(digits, STAMP_FORMAT).replace(tzinfo=timezone.utc)
        if len(digits) == 13:
            return datetime.fromtimestamp(int(digits) / 1000, tz=timezone.utc)
        if len(digits) == 10:
            return datetime.fromtimestamp(int(digits), tz=timezone.utc)
        return datetime.strptime(digits, "%Y%m%d").replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def extract_timestamp(name: str) -> datetime | None:
    """Return the first parseable timestamp embedded in ``name``, or None."""
    for match in _DIGIT_RUN.finditer(name):
        ts = _parse_digits(match.group(1))
        if ts is not None:
            return ts
    return None


def format_stamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime(STAMP_FORMAT)
