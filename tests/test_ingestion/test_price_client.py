"""Tests for PriceClient — per-ticker failures all surface as PriceFetchError."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from stocktrend.ingestion.price_client import PriceClient, PriceFetchError

_URL = "https://prices.test/stock/price"
_AS_OF = date(2024, 9, 18)


def _fetch(transport: httpx.AsyncBaseTransport, ticker: str = "7203"):
    async def go():
        async with httpx.AsyncClient(transport=transport) as http:
            return await PriceClient(http, _URL, timeout_s=5.0).fetch_daily_prices(ticker, _AS_OF)

    return asyncio.run(go())


class TestPriceClient:
    def test_sends_ticker_as_scode(self, page_transport, price_page, daily_rows):
        calls: list[str] = []
        html = price_page(daily_rows(date(2024, 9, 17), 3))
        rows = _fetch(page_transport({"7203": (200, html)}, calls))

        assert calls == ["7203"]
        assert len(rows) == 3
        assert rows[0].date == "2024/09/17"

    def test_non_200_status_is_a_fetch_error(self, page_transport):
        with pytest.raises(PriceFetchError, match="status code error: 500") as excinfo:
            _fetch(page_transport({"7203": (500, "boom")}))
        assert excinfo.value.ticker == "7203"

    def test_page_without_rows_is_a_fetch_error(self, page_transport, price_page):
        with pytest.raises(PriceFetchError, match="no price rows"):
            _fetch(page_transport({"7203": (200, price_page([]))}))

    def test_malformed_page_is_a_fetch_error(self, page_transport, price_page):
        html = price_page([("9/17", ["1", "2", "3"])])
        with pytest.raises(PriceFetchError, match="malformed page"):
            _fetch(page_transport({"7203": (200, html)}))

    def test_timeout_is_a_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PriceFetchError, match="code=7203: request failed"):
            _fetch(httpx.MockTransport(handler))
