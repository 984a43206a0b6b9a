"""
Ingestion layer — daily price page fetching, parsing and storage.

Submodules:
  price_page      — HTML table → ``DailyPriceRow`` (BeautifulSoup)
  price_client    — async ``httpx`` fetch of one ticker's page
  fetch_pipeline  — rate-limited concurrent fetch/store with soft and fatal failures

Configuration (``[fetch]`` in config/default.toml, or env):
  STOCKTREND_PRICE_URL          — page URL; the ticker is sent as ``scode``
  STOCKTREND_FETCH_INTERVAL_MS  — dispatch interval between tickers
  STOCKTREND_FETCH_TIMEOUT_S    — per-request timeout
"""
