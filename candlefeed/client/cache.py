from __future__ import annotations

from typing import Iterable, List, Optional

from candlefeed.candles.series import DEFAULT_MAX_LENGTH, CandleSeries
from candlefeed.models.market import Candle
from candlefeed.models.messages import StreamMessage


class CandleCache:
    """
    Consumer-side copy of the candle history.

    - initial frames replace everything
    - update frames merge by timestamp (first write wins)
    - error frames never touch the data; the text is returned to the caller
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        self.series = CandleSeries(max_length=max_length)

    def __len__(self) -> int:
        return len(self.series)

    def candles(self) -> List[Candle]:
        return list(self.series)

    def is_empty(self) -> bool:
        return self.series.is_empty()

    def seed(self, candles: Iterable[Candle]) -> bool:
        """Fill from an HTTP snapshot, but only if nothing has arrived yet."""
        if not self.is_empty():
            return False
        self.series.replace(candles)
        return True

    def on_message(self, message: StreamMessage) -> Optional[str]:
        """Apply one real-time frame. Returns the error text for error frames."""
        if message.type == "initial":
            self.series.replace(message.candles())
            return None

        if message.type == "update":
            self.series.merge(message.candles())
            return None

        return message.error or "Unknown error"
