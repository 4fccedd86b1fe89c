from __future__ import annotations

from typing import Dict, Iterable, List

from pydantic import BaseModel

from candlefeed.models.market import Candle

RATIOS = (0.0, 0.382, 0.618, 1.0)


class FibonacciLevels(BaseModel):
    """
    Retracement levels between the recent low and high.

    levels maps a label ("0%", "38.2%", "61.8%", "100%") to a price.
    """

    high: float
    low: float
    lookback: int
    levels: Dict[str, float]


def _label(ratio: float) -> str:
    return f"{ratio * 100:g}%"


def retracement_levels(candles: Iterable[Candle], lookback: int = 50) -> FibonacciLevels:
    recent: List[Candle] = list(candles)[-lookback:]
    if not recent:
        raise ValueError("need at least one candle for Fibonacci levels")

    high = max(c.high for c in recent)
    low = min(c.low for c in recent)
    span = high - low

    levels = {_label(r): round(low + span * r, 2) for r in RATIOS}
    return FibonacciLevels(high=high, low=low, lookback=len(recent), levels=levels)
