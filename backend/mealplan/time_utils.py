from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


# Sunday-first, matching the day keys stored on meal selections and menu items
DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.utcnow()


def utctoday() -> date:
    return utcnow().date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD" (or a full ISO datetime) into a date."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    return parse_iso_datetime(s).date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


# =============================================================================
# WEEK ARITHMETIC
# =============================================================================

def day_name(d: date) -> str:
    """Lowercase weekday name, e.g. date(2026, 10, 18) -> "sunday"."""
    # date.weekday(): Monday == 0
    return DAY_NAMES[(d.weekday() + 1) % 7]


def week_start(d: date, anchor: str = "sunday") -> date:
    """Most recent anchor weekday on or before d."""
    offset = (DAY_NAMES.index(day_name(d)) - DAY_NAMES.index(anchor)) % 7
    return d - timedelta(days=offset)


def week_end(d: date, anchor: str = "sunday") -> date:
    """Last day of the anchor-aligned week containing d (inclusive)."""
    return week_start(d, anchor) + timedelta(days=6)


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of consecutive dates."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def at_hour(d: date, hour: int) -> datetime:
    return datetime.combine(d, time(hour=hour))


def day_bounds(d: date) -> tuple[datetime, datetime]:
    """[start, end) datetimes of a calendar day."""
    start = datetime.combine(d, time.min)
    return start, start + timedelta(days=1)
