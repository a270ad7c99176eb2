"""Month arithmetic on "YYYY-MM" strings.

Every month in the ledger is a zero-padded "YYYY-MM" string. Range checks
across the engine compare these strings lexicographically, which is only
correct for this exact format, so anything else is rejected at the edges.
"""

import re
from datetime import date

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_month(month: str) -> str:
    """Return month unchanged if it is a valid "YYYY-MM" string, else raise ValueError."""
    if not isinstance(month, str) or not _MONTH_RE.match(month):
        raise ValueError(f"Invalid month {month!r}, expected zero-padded YYYY-MM")
    return month


def parse_month(month: str) -> tuple[int, int]:
    validate_month(month)
    year, mon = month.split("-")
    return int(year), int(mon)


def format_month(year: int, month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError(f"Month number out of range: {month}")
    return f"{year:04d}-{month:02d}"


def add_months(month: str, count: int) -> str:
    """Shift a month by count months (negative goes back), rolling year boundaries."""
    year, mon = parse_month(month)
    index = year * 12 + (mon - 1) + count
    return format_month(index // 12, index % 12 + 1)


def previous_month(month: str) -> str:
    """Month immediately before the given one ("2025-01" -> "2024-12")."""
    return add_months(month, -1)


def next_month(month: str) -> str:
    return add_months(month, 1)


def months_of_year(year: int) -> list[str]:
    return [format_month(year, m) for m in range(1, 13)]


def month_range(start: str, end: str) -> list[str]:
    """All months from start to end inclusive; empty if end precedes start."""
    validate_month(start)
    validate_month(end)
    months = []
    current = start
    while current <= end:
        months.append(current)
        current = next_month(current)
    return months


def month_of(day: date) -> str:
    """Month containing the given date."""
    return format_month(day.year, day.month)


def year_of(month: str) -> int:
    return parse_month(month)[0]


def is_month_in_range(month: str, start: str | None, end: str | None) -> bool:
    """Check start <= month <= end, where None bounds are open."""
    if start and month < start:
        return False
    if end and month > end:
        return False
    return True


__all__ = [
    "validate_month",
    "parse_month",
    "format_month",
    "add_months",
    "previous_month",
    "next_month",
    "months_of_year",
    "month_range",
    "month_of",
    "year_of",
    "is_month_in_range",
]
