"""
Period utilities

Date normalization and calendar bucketing shared by the profit series and the
period comparison. Pure functions, no I/O. Unparsable input never raises, it
comes back as None (or an empty period list).
"""
import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional

from dateutil import parser as date_parser

GRANULARITIES = ("day", "month", "year")
DEFAULT_GRANULARITY = "month"

_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_MS_PER_DAY = 86_400_000


def normalize_date(value: Any) -> Optional[str]:
    """Return the ISO date (YYYY-MM-DD) of a date-like value, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None
    if _ISO_PREFIX_RE.match(text):
        try:
            return date.fromisoformat(text[:10]).isoformat()
        except ValueError:
            return None
    try:
        return date_parser.parse(text).date().isoformat()
    except (ValueError, OverflowError):
        return None


def parse_date(value: Any) -> Optional[date]:
    norm = normalize_date(value)
    return date.fromisoformat(norm) if norm else None


def _to_utc_naive(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    parsed = parse_date(value)
    if parsed is None:
        return None
    return datetime(parsed.year, parsed.month, parsed.day)


def days_between(start: Any, end: Any) -> Optional[int]:
    """Whole days from ``start`` to ``end`` (half-up rounding), None if either is missing."""
    if start is None or end is None:
        return None
    a = _to_utc_naive(start)
    b = _to_utc_naive(end)
    if a is None or b is None:
        return None
    diff_ms = (b - a).total_seconds() * 1000
    return int(math.floor(diff_ms / _MS_PER_DAY + 0.5))


def period_key(value: Any, granularity: str = DEFAULT_GRANULARITY) -> Optional[str]:
    """Bucket key of a date: YYYY-MM-DD, YYYY-MM or YYYY."""
    norm = normalize_date(value)
    if not norm:
        return None
    if granularity == "day":
        return norm
    if granularity == "month":
        return norm[:7]
    return norm[:4]


def list_periods(from_: Any, to: Any, granularity: str = DEFAULT_GRANULARITY) -> List[str]:
    """Every period key between two bounds, inclusive and gap-free."""
    start = parse_date(from_)
    end = parse_date(to)
    if start is None or end is None:
        return []

    periods: List[str] = []
    if granularity == "day":
        current = start
        while current <= end:
            periods.append(current.isoformat())
            current += timedelta(days=1)
        return periods

    if granularity == "month":
        year, month = start.year, start.month
        while (year, month) <= (end.year, end.month):
            periods.append(f"{year:04d}-{month:02d}")
            month += 1
            if month > 12:
                year += 1
                month = 1
        return periods

    return [f"{year:04d}" for year in range(start.year, end.year + 1)]
