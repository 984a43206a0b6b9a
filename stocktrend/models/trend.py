"""
Moving-average and trend models, plus their storage-row shapes.

Storage rows are flat string tuples:

  movingavg: ``(code, date, m3, m5, m7, m10, m20, m60, m100)``
  trend:     ``(code, date, trend, trendTurn, growthRate, crossMoving5,
               continuationDays)``

Enum columns store the ordinal value; ``growthRate`` keeps four significant
digits. Moving averages are written in their shortest exact form with no
trailing ``.0``.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, field_validator

from stocktrend.taxonomy.trend_taxonomy import CrossSignal, TrendLabel, TrendTurn
from stocktrend.utils.time_utils import normalize_storage_date

MOVING_AVERAGE_WINDOWS: tuple[int, ...] = (3, 5, 7, 10, 20, 60, 100)


def format_decimal(value: float) -> str:
    """Shortest round-trip text for ``value`` without a trailing ``.0``.

    >>> format_decimal(1000.0)
    '1000'
    >>> format_decimal(1001.5)
    '1001.5'
    """
    if math.isnan(value) or math.isinf(value):
        return str(value)
    text = repr(float(value))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def format_growth_rate(value: float) -> str:
    """Four significant digits: ``1.0123456`` → ``'1.012'``."""
    return f"{value:.4g}"


class TrendMovingAvgs(BaseModel):
    """The four averages the classifier compares."""

    model_config = ConfigDict(frozen=True)

    m5: float
    m20: float
    m60: float
    m100: float


class MovingAverageSet(BaseModel):
    """Moving averages for one date, keyed by window size.

    Attributes:
        date: ``YYYY/MM/DD``.
        averages: Window size → average. Must cover ``MOVING_AVERAGE_WINDOWS``.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    averages: dict[int, float]

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_storage_date(v)

    @field_validator("averages")
    @classmethod
    def validate_windows(cls, v: dict[int, float]) -> dict[int, float]:
        missing = [w for w in MOVING_AVERAGE_WINDOWS if w not in v]
        if missing:
            raise ValueError(f"Missing moving-average windows: {missing}.")
        return v

    def window(self, size: int) -> float:
        return self.averages[size]

    def trend_avgs(self) -> TrendMovingAvgs:
        return TrendMovingAvgs(
            m5=self.averages[5],
            m20=self.averages[20],
            m60=self.averages[60],
            m100=self.averages[100],
        )

    def to_storage_row(self, ticker: str) -> tuple[str, ...]:
        return (ticker, self.date) + tuple(
            format_decimal(self.averages[w]) for w in MOVING_AVERAGE_WINDOWS
        )


class TrendRecord(BaseModel):
    """Trend signals for one ticker on one date.

    Attributes:
        date: ``YYYY/MM/DD``.
        trend: Classified label.
        turn: Today's label vs. the previous day's.
        growth_rate: Latest close ÷ previous close (0 when unavailable).
        cross: 5-day moving-average cross on the last two closes.
        streak_days: Consecutive days the close moved in one direction.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    trend: TrendLabel
    turn: TrendTurn
    growth_rate: float
    cross: CrossSignal
    streak_days: int

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_storage_date(v)

    def to_storage_row(self, ticker: str) -> tuple[str, ...]:
        return (
            ticker,
            self.date,
            str(int(self.trend)),
            str(int(self.turn)),
            format_growth_rate(self.growth_rate),
            str(int(self.cross)),
            str(self.streak_days),
        )

    @classmethod
    def from_storage_row(cls, row: tuple[str, ...]) -> tuple[str, "TrendRecord"]:
        """Inverse of ``to_storage_row``; returns ``(ticker, record)``.

        Raises:
            ValueError: If the row does not have seven columns or a column
                does not parse.
        """
        if len(row) != 7:
            raise ValueError(f"trend row must have 7 columns, got {len(row)}: {row}")
        code, day, trend, turn, growth, cross, streak = row
        return code, cls(
            date=day,
            trend=TrendLabel(int(trend)),
            turn=TrendTurn(int(turn)),
            growth_rate=float(growth),
            cross=CrossSignal(int(cross)),
            streak_days=int(streak),
        )
