from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from candlefeed.candles.series import CandleSeries
from candlefeed.models.market import Candle
from candlefeed.providers.base import MarketDataProvider, ProviderError
from candlefeed.providers.sample import SampleProvider

log = logging.getLogger("alphavantage_provider")

SERIES_KEY = "Time Series (Daily)"


class AlphaVantageProvider(MarketDataProvider):
    """
    Alpha Vantage provider (REST, daily series).

    - no API key: sample candles, no network call
    - API key: one GET of TIME_SERIES_DAILY (compact), newest `limit` days
    - any upstream failure: logged, then sample candles
    """

    def __init__(
        self,
        api_key: Optional[str],
        symbol: str = "AAPL",
        limit: int = 30,
        base_url: str = "https://www.alphavantage.co/query",
        timeout_s: float = 10.0,
        fallback: Optional[MarketDataProvider] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.symbol = symbol
        self.limit = limit
        self.base_url = base_url
        self.fallback = fallback or SampleProvider(count=limit)
        self._client = httpx.Client(timeout=timeout_s, transport=transport)

    # -------------------------
    # Public interface used by the app
    # -------------------------
    def fetch_candles(self) -> CandleSeries:
        if not self.api_key:
            log.info("No Alpha Vantage API key found, using sample data")
            return self.fallback.fetch_candles()

        try:
            return self._fetch_daily()
        except (ProviderError, httpx.HTTPError, ValueError) as e:
            log.warning("Failed to fetch real data: %s, using sample data", e)
            return self.fallback.fetch_candles()

    def close(self) -> None:
        self._client.close()

    # -------------------------
    # REST: daily
    # -------------------------
    def _fetch_daily(self) -> CandleSeries:
        """
        Alpha Vantage daily endpoint:
          GET {base_url}?function=TIME_SERIES_DAILY&symbol=...&apikey=...&outputsize=compact
        """
        params = {
            "function": "TIME_SERIES_DAILY",
            "symbol": self.symbol,
            "apikey": self.api_key,
            "outputsize": "compact",
        }

        resp = self._client.get(self.base_url, params=params)
        resp.raise_for_status()

        payload = resp.json()
        if not isinstance(payload, dict):
            raise ProviderError(f"unexpected payload type {type(payload).__name__}")

        # Errors and throttling come back as 200 with a text field
        if "Error Message" in payload:
            raise ProviderError(f"Alpha Vantage error: {payload['Error Message']}")
        if payload.get("Note"):
            raise ProviderError(f"Alpha Vantage throttle: {payload['Note']}")
        if payload.get("Information"):
            raise ProviderError(f"Alpha Vantage notice: {payload['Information']}")

        series = payload.get(SERIES_KEY)
        if not isinstance(series, dict) or not series:
            raise ProviderError("no data returned, check API key or symbol")

        out: list[Candle] = []
        for date_str, quote in series.items():
            if not isinstance(quote, dict):
                continue
            out.append(self._parse_row(date_str, quote))

        if not out:
            raise ProviderError("daily series had no usable rows")

        out.sort(key=lambda c: c.timestamp)
        return CandleSeries.from_candles(out[-self.limit:])

    def _parse_row(self, date_str: str, quote: dict[str, Any]) -> Candle:
        try:
            candle = Candle(
                timestamp=self._parse_date_ms(date_str),
                open=round(float(quote["1. open"]), 2),
                high=round(float(quote["2. high"]), 2),
                low=round(float(quote["3. low"]), 2),
                close=round(float(quote["4. close"]), 2),
                volume=int(float(quote["5. volume"])),
            )
        except (KeyError, TypeError) as e:
            raise ProviderError(f"malformed row for {date_str}: {e!r}") from e

        # One bad row poisons the response: serve sample data instead
        if not candle.is_valid():
            raise ProviderError(f"row for {date_str} breaks OHLCV bounds: {candle}")
        return candle

    # -------------------------
    # Timestamp parsing
    # -------------------------
    def _parse_date_ms(self, date_str: str) -> int:
        """"YYYY-MM-DD" -> ms since epoch at UTC midnight."""
        dt = datetime.strptime(date_str.strip(), "%Y-%m-%d").replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
