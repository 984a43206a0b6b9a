"""
Price models — what the fetch stage produces and the trend stage consumes.

  - ``DailyPriceRow``    — one scraped page row, all seven columns, already
                           normalised (``YYYY/MM/DD`` date, no thousands
                           separators). Written to the ``daily`` table.
  - ``PriceObservation`` — the ``(date, close)`` pair the engines work on.
  - ``FailedFetch``      — a soft, per-ticker fetch failure.

All models are frozen.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from stocktrend.utils.time_utils import normalize_storage_date


class PriceObservation(BaseModel):
    """Closing price for one ticker on one trading day.

    Attributes:
        date: Trading date, ``YYYY/MM/DD``.
        close: Closing price.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    close: float

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_storage_date(v)


class DailyPriceRow(BaseModel):
    """One row of the daily price page.

    Price columns stay as text because they are persisted verbatim; they are
    validated as numeric by the page parser before this model is built.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    open: str
    high: str
    low: str
    close: str
    turnover: str
    modified_close: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return normalize_storage_date(v)

    def to_storage_row(self, ticker: str) -> tuple[str, ...]:
        """``(code, date, open, high, low, close, turnover, modified)``."""
        return (
            ticker,
            self.date,
            self.open,
            self.high,
            self.low,
            self.close,
            self.turnover,
            self.modified_close,
        )


class FailedFetch(BaseModel):
    """A ticker whose fetch failed without stopping the batch.

    Attributes:
        ticker: Ticker code.
        error: Human-readable cause (status code, parse error, timeout...).
    """

    model_config = ConfigDict(frozen=True)

    ticker: str
    error: str
