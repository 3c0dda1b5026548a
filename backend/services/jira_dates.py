"""Jira timestamp helpers."""

from datetime import datetime, timezone
from typing import Optional

# Jira formats: "2024-10-31T12:11:56.289-0400" or "2024-10-31T12:11:56.289+0000"
JIRA_DATE_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
]


def parse_jira_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse a Jira date string into a timezone-aware datetime.

    Values without an offset are taken as UTC. Returns None for empty or
    unparseable input.
    """
    if not date_str or not isinstance(date_str, str):
        return None

    for fmt in JIRA_DATE_FORMATS:
        try:
            parsed = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def whole_days_between(start: datetime, end: datetime) -> int:
    """Number of complete days from ``start`` to ``end`` (truncated toward zero)."""
    seconds = (end - start).total_seconds()
    return int(seconds / 86400)


def week_key(value: datetime) -> str:
    """ISO ``year-week`` bucket, e.g. ``2024-03``."""
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year}-{iso_week:02d}"
