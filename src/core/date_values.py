"""Datetime normalization helpers.

Stored dates travel as ISO-8601 strings in UTC with millisecond
precision. Naive datetimes are treated as UTC so that every comparison
happens between aware values.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
import math
from typing import Any


def to_utc(value: datetime | date) -> datetime:
    """Return an aware UTC datetime for a datetime or date."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_datetime(value: datetime | date) -> str:
    """Format a datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ`."""
    formatted = to_utc(value).isoformat(timespec="milliseconds")
    return formatted.replace("+00:00", "Z")


def parse_datetime(text: str) -> datetime | None:
    """Parse an ISO-8601 string into an aware datetime.

    Returns:
        Parsed UTC datetime, or None when the text is not a date.
    """
    candidate = text.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(candidate))
    except ValueError:
        return None


def to_millis(value: Any) -> float:
    """Return epoch milliseconds for a date-like value, NaN otherwise."""
    if isinstance(value, (datetime, date)):
        return to_utc(value).timestamp() * 1000.0
    if isinstance(value, str):
        parsed = parse_datetime(value)
        return math.nan if parsed is None else parsed.timestamp() * 1000.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return math.nan
