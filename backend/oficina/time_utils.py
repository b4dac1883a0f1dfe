"""
Timestamps are stored as naive UTC and serialized with a trailing "Z".

Report periods are half-open [start, end) ranges so a session closed at
midnight on the first of a month belongs to that month only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.utcnow()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a report boundary or filter value into naive UTC.

    "2026-04-01", "2026-04-01T08:30" and "2026-04-01T08:30:00-03:00" are all
    accepted; a value without offset is read as UTC. Blank gives None.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """2026-04-01 08:30:00.123 -> "2026-04-01T08:30:00Z" (naive means UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """[first day of month, first day of next month)."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
    if next_year > 9999:
        raise ValueError("year must be between 1 and 9998")
    return datetime(year, month, 1), datetime(next_year, next_month, 1)


def year_bounds(year: int) -> tuple[datetime, datetime]:
    if not 1 <= year < 9999:
        raise ValueError("year must be between 1 and 9998")
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)
