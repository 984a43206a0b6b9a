"""
Daily price page parser.

The page lists about a month of daily prices in a table, one ``<tr>`` per
trading day::

    <div class="m-tableType01_table"><table><tbody>
      <tr>
        <th class="a-taC">12/30(Mon)</th>
        <td class="a-taR">5,430</td>   open
        <td class="a-taR">5,480</td>   high
        <td class="a-taR">5,400</td>   low
        <td class="a-taR">5,470</td>   close
        <td class="a-taR">1,234,500</td> turnover
        <td class="a-taR">5,470</td>   modified close
      </tr>
      ...

The date cell only shows month/day; the year comes from the caller's as-of
date. Prices lose their thousands separators and must parse as numbers.
Anything else wrong with the page raises ``PricePageError``.
"""

from __future__ import annotations

from datetime import date

from bs4 import BeautifulSoup

from stocktrend.models.price import DailyPriceRow
from stocktrend.utils.time_utils import format_storage_date, resolve_month_day

ROW_SELECTOR = ".m-tableType01_table table tbody tr"
DATE_SELECTOR = ".a-taC"
PRICE_SELECTOR = ".a-taR"

# open, high, low, close, turnover, modified close
PRICE_COLUMNS = 6


class PricePageError(ValueError):
    """The page does not contain a well-formed daily price table."""


def normalize_price(text: str) -> str:
    """Strip thousands separators and check the value is numeric.

    ``"5,430"`` → ``"5430"``; ``"340.3"`` is returned unchanged.

    Raises:
        PricePageError: If the text is not a number once commas are removed.
    """
    value = text.strip().replace(",", "")
    try:
        float(value)
    except ValueError:
        raise PricePageError(f"invalid price {text!r}") from None
    return value


def parse_price_page(html: str, as_of: date) -> list[DailyPriceRow]:
    """Parse every daily row on the page, in page order (newest first).

    Args:
        html: Page body.
        as_of: Date used to give each ``M/D`` cell its year.

    Returns:
        One ``DailyPriceRow`` per table row. Empty if the table is missing.

    Raises:
        PricePageError: For a missing/invalid date cell, a non-numeric price,
            or a row without exactly ``PRICE_COLUMNS`` price cells.
    """
    soup = BeautifulSoup(html, "html.parser")
    rows: list[DailyPriceRow] = []

    for tr in soup.select(ROW_SELECTOR):
        date_cell = tr.select_one(DATE_SELECTOR)
        if date_cell is None:
            raise PricePageError("row without a date cell")
        try:
            day = resolve_month_day(date_cell.get_text(), as_of)
        except ValueError as exc:
            raise PricePageError(f"invalid date cell: {exc}") from exc

        prices = [normalize_price(td.get_text()) for td in tr.select(PRICE_SELECTOR)]
        if len(prices) != PRICE_COLUMNS:
            raise PricePageError(
                f"row {format_storage_date(day)} has {len(prices)} price columns, "
                f"expected {PRICE_COLUMNS}"
            )

        open_, high, low, close, turnover, modified = prices
        rows.append(
            DailyPriceRow(
                date=format_storage_date(day),
                open=open_,
                high=high,
                low=low,
                close=close,
                turnover=turnover,
                modified_close=modified,
            )
        )

    return rows
