"""
Async client for the daily price page.

The ticker is passed as the ``scode`` query parameter of
``[fetch] price_url``. Each request is bounded by ``timeout_s``.

Every way a single ticker can fail (transport error, timeout, non-200 status,
unparseable or empty page) is raised as ``PriceFetchError`` so the fetch
pipeline can record it and move on.
"""

from __future__ import annotations

import logging
import time
from datetime import date

import httpx

from stocktrend.ingestion.price_page import PricePageError, parse_price_page
from stocktrend.models.price import DailyPriceRow

logger = logging.getLogger(__name__)


class PriceFetchError(RuntimeError):
    """Fetching or parsing one ticker's price page failed."""

    def __init__(self, ticker: str, message: str) -> None:
        self.ticker = ticker
        super().__init__(f"code={ticker}: {message}")


class PriceClient:
    """Fetches and parses one ticker's daily price page.

    Args:
        client: Shared ``httpx.AsyncClient`` (owned by the caller).
        price_url: Page URL without the ticker parameter.
        timeout_s: Per-request timeout in seconds.
    """

    def __init__(self, client: httpx.AsyncClient, price_url: str, timeout_s: float) -> None:
        self._client = client
        self._price_url = price_url
        self._timeout_s = timeout_s

    async def fetch_daily_prices(self, ticker: str, as_of: date) -> list[DailyPriceRow]:
        """Return the page's rows for ``ticker``, newest first.

        Raises:
            PriceFetchError: On any per-ticker failure.
        """
        start = time.monotonic()
        try:
            resp = await self._client.get(
                self._price_url,
                params={"scode": ticker},
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as exc:
            raise PriceFetchError(ticker, f"request failed: {exc!r}") from exc

        if resp.status_code != 200:
            raise PriceFetchError(
                ticker,
                f"status code error: {resp.status_code} {resp.reason_phrase}, url={resp.url}",
            )

        try:
            rows = parse_price_page(resp.text, as_of)
        except PricePageError as exc:
            raise PriceFetchError(ticker, f"malformed page: {exc}") from exc

        if not rows:
            raise PriceFetchError(ticker, "no price rows on page")

        logger.debug(
            "fetched code=%s rows=%d in %.3fs",
            ticker, len(rows), time.monotonic() - start,
            extra={"ticker": ticker},
        )
        return rows
