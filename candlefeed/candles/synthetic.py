from __future__ import annotations

import math
import random
import time
from typing import Optional

from candlefeed.candles.series import CandleSeries
from candlefeed.models.market import DAY_MS, Candle

BASE_PRICE = 150.0
AMPLITUDE = 10.0
MAX_VOLUME = 5_000_000


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_candles(
    count: int = 30,
    base_price: float = BASE_PRICE,
    amplitude: float = AMPLITUDE,
    start_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> CandleSeries:
    """
    Sample daily candles used when no real data is available.

    - open follows a sine drift around base_price plus +/-2 of noise
    - change mixes a skewed uniform step with a +/-4 volatility term
    - high/low are taken over open and close (plus a wick), so the OHLC
      envelope always holds
    - one candle per day, the first one a day after start_ms
    """
    rng = rng or random.Random()
    start = now_ms() if start_ms is None else start_ms

    candles = []
    for i in range(1, count + 1):
        volatility = (rng.random() - 0.5) * 8
        open_ = base_price + math.sin(i / 5) * amplitude + (rng.random() * 4 - 2)
        change = (rng.random() * 6 - 1) + volatility

        high = max(open_, open_ + change, open_ + abs(change) * 0.5)
        low = min(open_, open_ + change, open_ - abs(change) * 0.7)
        close = open_ + change

        candles.append(
            Candle(
                timestamp=start + i * DAY_MS,
                open=round(open_, 2),
                high=round(high, 2),
                low=round(low, 2),
                close=round(close, 2),
                volume=int(rng.random() * MAX_VOLUME),
            )
        )

    return CandleSeries.from_candles(candles)
