from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

DAY_MS = 86_400_000


@dataclass(frozen=True)
class Candle:
    """
    Candle (OHLCV) for one daily bucket.

    timestamp: bucket time in ms since epoch (unique key within a series)
    open/high/low/close: prices rounded to 2 decimals
    volume: traded shares during the bucket
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: int

    def is_valid(self) -> bool:
        """True when the OHLC envelope and sign constraints hold."""
        return (
            self.high >= max(self.open, self.close)
            and self.low <= min(self.open, self.close)
            and min(self.open, self.high, self.low, self.close) > 0
            and self.volume >= 0
        )

    def to_wire(self) -> Dict[str, Any]:
        """Short-key JSON form used by the HTTP and WS payloads."""
        return {
            "x": self.timestamp,
            "o": self.open,
            "h": self.high,
            "l": self.low,
            "c": self.close,
            "v": self.volume,
        }

    @classmethod
    def from_wire(cls, row: Dict[str, Any]) -> "Candle":
        return cls(
            timestamp=int(row["x"]),
            open=float(row["o"]),
            high=float(row["h"]),
            low=float(row["l"]),
            close=float(row["c"]),
            volume=int(row["v"]),
        )
