"""
Date helpers shared by scraping, storage and the batch orchestrator.

Storage format
--------------
Dates are persisted as ``YYYY/MM/DD`` strings. The format sorts
lexicographically in date order, which the SQL ``ORDER BY date DESC``
queries rely on.

Year disambiguation
-------------------
The price page only shows ``M/D``. The year is taken from an explicit as-of
date passed by the caller: a month numerically greater than the as-of month
belongs to the previous year (a January scrape that still lists December).
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

STORAGE_DATE_FORMAT = "%Y/%m/%d"

_MONTH_DAY_RE = re.compile(r"([0-9]+)/([0-9]+)")


def parse_storage_date(value: str) -> date:
    """Parse a ``YYYY/MM/DD`` string.

    Raises:
        ValueError: If ``value`` is not in the storage format.
    """
    try:
        return datetime.strptime(value, STORAGE_DATE_FORMAT).date()
    except ValueError as exc:
        raise ValueError(
            f"Invalid date '{value}'. Expected format: YYYY/MM/DD."
        ) from exc


def format_storage_date(value: date) -> str:
    """Format a date as ``YYYY/MM/DD``."""
    return value.strftime(STORAGE_DATE_FORMAT)


def normalize_storage_date(value: str) -> str:
    """Validate and zero-pad a ``YYYY/MM/DD`` string (``2024/1/5`` -> ``2024/01/05``)."""
    return format_storage_date(parse_storage_date(value))


def resolve_month_day(text: str, as_of: date) -> date:
    """Turn a scraped ``M/D`` fragment into a full calendar date.

    Leading/trailing noise around the fragment is ignored, so ``" 12/30(Mon)"``
    parses the same as ``"12/30"``.

    Args:
        text: Raw cell text containing a ``M/D`` date.
        as_of: Reference date used to pick the year.

    Returns:
        The resolved ``date``.

    Raises:
        ValueError: If no ``M/D`` fragment is found or it is not a real date.
    """
    match = _MONTH_DAY_RE.search(text)
    if match is None:
        raise ValueError(f"No month/day found in {text!r}.")
    month, day = int(match.group(1)), int(match.group(2))
    year = as_of.year - 1 if month > as_of.month else as_of.year
    return date(year, month, day)


def is_weekend(value: date) -> bool:
    """Return ``True`` for Saturday and Sunday."""
    return value.weekday() >= 5


def default_date_range(today: date, lookback_days: int) -> tuple[date, date]:
    """Return ``(today - lookback_days, today)``."""
    return today - timedelta(days=lookback_days), today


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)
