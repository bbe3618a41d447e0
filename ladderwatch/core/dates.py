"""Ladderwatch — UTC calendar-date helpers."""

import re
from datetime import date, datetime, timezone
from typing import Optional

from ladderwatch.core.exceptions import InvalidSnapshotDateError

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> str:
    """Today's snapshot date (UTC) as YYYY-MM-DD."""
    return utc_now().date().isoformat()


def parse_snapshot_date(value: Optional[str]) -> Optional[str]:
    """Validate an optional YYYY-MM-DD argument; None passes through."""
    if value is None or value == "":
        return None
    if not _DATE_PATTERN.match(value):
        raise InvalidSnapshotDateError(
            f"Invalid snapshot date '{value}'. Expected YYYY-MM-DD.",
            {"value": value},
        )
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise InvalidSnapshotDateError(
            f"Invalid snapshot date '{value}'. Not a calendar date.",
            {"value": value},
        )
