from __future__ import annotations

import random
from typing import Optional

from candlefeed.candles.series import CandleSeries
from candlefeed.candles.synthetic import generate_candles
from candlefeed.providers.base import MarketDataProvider


class SampleProvider(MarketDataProvider):
    """Synthetic candles only. Used for PROVIDER=SAMPLE and as the fallback."""

    def __init__(self, count: int = 30, rng: Optional[random.Random] = None) -> None:
        self.count = count
        self._rng = rng

    def fetch_candles(self) -> CandleSeries:
        return generate_candles(count=self.count, rng=self._rng)
