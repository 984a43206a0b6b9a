"""
Tests for stocktrend.reporting.trend_sheet and the sheet backends.

Covers:
  - load_tickers(): blanks skipped, non-numeric codes rejected
  - check_day_off(): weekend and holiday rules, unreadable holiday sheet
  - build_report_rows() / write_trend_report(): header and ordering
  - CsvSheet / InMemorySheet: read, insert, update, clear
"""

from __future__ import annotations

from datetime import date

import pytest

from stocktrend.models.trend import TrendRecord
from stocktrend.reporting.trend_sheet import (
    REPORT_HEADER,
    build_report_rows,
    check_day_off,
    load_tickers,
    write_trend_report,
)
from stocktrend.sheets.sheet import CsvSheet, InMemorySheet
from stocktrend.taxonomy.trend_taxonomy import CrossSignal, TrendLabel, TrendTurn

# 2024/09/16 is a Monday.
_MONDAY = date(2024, 9, 16)
_WEDNESDAY = date(2024, 9, 18)


class _BrokenSheet(InMemorySheet):
    def read(self):
        raise OSError("sheet unavailable")


def _trend(code: str, label: TrendLabel, growth: float, streak: int = 1) -> tuple[str, TrendRecord]:
    return code, TrendRecord(
        date="2024/09/13",
        trend=label,
        turn=TrendTurn.NONE,
        growth_rate=growth,
        cross=CrossSignal.UPWARD,
        streak_days=streak,
    )


class TestLoadTickers:
    def test_first_column_blanks_skipped(self):
        sheet = InMemorySheet([["7203", "Toyota"], [""], [], [" 6758 "]])
        assert load_tickers(sheet) == ["7203", "6758"]

    def test_non_numeric_code_raises(self):
        with pytest.raises(ValueError, match="Invalid ticker code"):
            load_tickers(InMemorySheet([["7203"], ["code"]]))

    def test_empty_sheet(self):
        assert load_tickers(InMemorySheet()) == []


class TestCheckDayOff:
    def test_day_after_sunday_is_off(self):
        result = check_day_off(_MONDAY, InMemorySheet([["2024/01/01"]]))
        assert result.day_off
        assert "2024/09/15" in result.reason

    def test_day_after_holiday_is_off(self):
        result = check_day_off(_WEDNESDAY, InMemorySheet([["2024/01/01"], ["2024/09/17"]]))
        assert result.day_off
        assert "holiday" in result.reason

    def test_regular_weekday_is_on(self):
        assert not check_day_off(_WEDNESDAY, InMemorySheet([["2024/01/01"]])).day_off

    def test_empty_holiday_sheet_falls_back_to_weekend_rule(self, caplog):
        assert not check_day_off(_WEDNESDAY, InMemorySheet()).day_off
        assert check_day_off(_MONDAY, InMemorySheet()).day_off
        assert "no data in holidays sheet" in caplog.text

    def test_unreadable_holiday_sheet_is_logged(self, caplog):
        assert not check_day_off(_WEDNESDAY, _BrokenSheet()).day_off
        assert "sheet unavailable" in caplog.text


class TestBuildReportRows:
    def test_ordered_by_trend_then_growth(self):
        rows = build_report_rows(
            [
                _trend("1001", TrendLabel.SHORT_TERM_ADVANCE, 1.01),
                _trend("1002", TrendLabel.LONG_TERM_ADVANCE, 0.99),
                _trend("1003", TrendLabel.SHORT_TERM_ADVANCE, 1.05),
                _trend("1004", TrendLabel.NEUTRAL, 1.2),
                _trend("1005", TrendLabel.LONG_TERM_DECLINE, 1.3),
            ],
            "2024/09/13",
        )
        assert [r[0] for r in rows[1:]] == ["1002", "1003", "1001", "1004", "1005"]

    def test_header_carries_compact_date(self):
        rows = build_report_rows([_trend("1001", TrendLabel.NEUTRAL, 1.0)], "2024/09/13")
        assert rows[0] == REPORT_HEADER + ["20240913"]

    def test_row_uses_display_names(self):
        rows = build_report_rows(
            [_trend("1001", TrendLabel.SHORT_TERM_ADVANCE, 1.0123456, streak=4)], "2024/09/13"
        )
        assert rows[1] == ["1001", "shortTermAdvance", "noTurn", "1.012", "upwardCross", "4"]

    def test_no_trends_gives_no_rows(self):
        assert build_report_rows([], "2024/09/13") == []


class TestWriteTrendReport:
    def test_replaces_previous_contents(self):
        sheet = InMemorySheet([["stale"], ["rows"], ["here"], ["x"]])
        written = write_trend_report(
            sheet, [_trend("1001", TrendLabel.NEUTRAL, 1.0)], "2024/09/13"
        )
        assert written == 1
        assert len(sheet.rows) == 2
        assert sheet.rows[1][0] == "1001"


class TestCsvSheet:
    def test_missing_file_reads_empty(self, tmp_path):
        assert CsvSheet(tmp_path / "missing.csv").read() == []

    def test_update_insert_clear(self, tmp_path):
        sheet = CsvSheet(tmp_path / "sheets" / "report.csv")
        sheet.update([["a", "1"], ["b", "2"]])
        sheet.insert([["c", "3"]])
        assert sheet.read() == [["a", "1"], ["b", "2"], ["c", "3"]]

        sheet.update([["d", "4"]])
        assert sheet.read() == [["d", "4"]]

        sheet.clear()
        assert sheet.read() == []
