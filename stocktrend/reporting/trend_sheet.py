"""
Sheet-facing helpers for the daily run.

  - ``load_tickers``      ticker universe from the first column of a sheet
  - ``check_day_off``     skip the run after a weekend or exchange holiday
  - ``build_report_rows`` trend report, best growth first within each trend
  - ``write_trend_report`` clear-then-write the report sheet
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from stocktrend.models.trend import TrendRecord, format_growth_rate
from stocktrend.sheets.sheet import Sheet, SheetRow
from stocktrend.utils.time_utils import format_storage_date, is_weekend

logger = logging.getLogger(__name__)

REPORT_HEADER = [
    "code", "trend", "trendTurn", "growthRate", "crossMoving5", "continuationDays",
]


# ── Ticker universe ───────────────────────────────────────────────────────────

def load_tickers(sheet: Sheet) -> list[str]:
    """Ticker codes from the first column; blank cells are skipped.

    Raises:
        ValueError: If a code is not numeric.
    """
    tickers: list[str] = []
    for row in sheet.read():
        if not row or not row[0].strip():
            continue
        code = row[0].strip()
        if not code.isdigit():
            raise ValueError(f"Invalid ticker code '{code}' in ticker sheet.")
        tickers.append(code)
    return tickers


# ── Day-off check ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DayOff:
    day_off: bool
    reason: str = ""


def check_day_off(target: date, holidays: Sheet) -> DayOff:
    """Is the day before ``target`` a holiday or a weekend day?

    Holidays are ``YYYY/MM/DD`` strings in the first column. If the holiday
    sheet cannot be read, or is empty, the error is logged and only the
    weekend rule applies.
    """
    previous = target - timedelta(days=1)
    try:
        if _is_holiday(previous, holidays):
            return DayOff(True, f"{format_storage_date(previous)} is a holiday")
    except (OSError, ValueError) as exc:
        logger.error("failed to check holidays: %s", exc)

    if is_weekend(previous):
        return DayOff(True, f"{format_storage_date(previous)} is saturday or sunday")
    return DayOff(False)


def _is_holiday(day: date, holidays: Sheet) -> bool:
    rows = holidays.read()
    if not rows:
        raise ValueError("no data in holidays sheet")
    wanted = format_storage_date(day)
    return any(row and row[0].strip() == wanted for row in rows)


# ── Trend report ──────────────────────────────────────────────────────────────

def build_report_rows(
    trends: list[tuple[str, TrendRecord]],
    report_date: str,
) -> list[SheetRow]:
    """Header plus one row per ticker.

    Rows are ordered by trend rank (highest first) and, within one trend, by
    growth rate (highest first). No trends gives no rows, not even a header.
    """
    if not trends:
        return []
    by_growth = sorted(trends, key=lambda t: t[1].growth_rate, reverse=True)
    by_trend = sorted(by_growth, key=lambda t: t[1].trend.rank(), reverse=True)

    rows: list[SheetRow] = [REPORT_HEADER + [report_date.replace("/", "")]]
    for code, record in by_trend:
        rows.append([
            code,
            record.trend.display_name(),
            record.turn.display_name(),
            format_growth_rate(record.growth_rate),
            record.cross.display_name(),
            str(record.streak_days),
        ])
    return rows


def write_trend_report(
    sheet: Sheet,
    trends: list[tuple[str, TrendRecord]],
    report_date: str,
) -> int:
    """Replace the report sheet's contents; returns the number of ticker rows."""
    rows = build_report_rows(trends, report_date)
    sheet.update(rows)
    logger.info("trend report for %s written: %d codes", report_date, len(trends))
    return len(trends)
