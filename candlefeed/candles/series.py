from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from candlefeed.models.market import Candle

DEFAULT_MAX_LENGTH = 1000


@dataclass
class CandleSeries:
    """
    Ordered, bounded candle history.

    candles: ascending by timestamp, never two candles with the same timestamp
    max_length: once exceeded, the oldest candles are evicted

    Only replace() and merge() mutate the series.
    """
    max_length: int = DEFAULT_MAX_LENGTH
    candles: List[Candle] = field(default_factory=list)

    @classmethod
    def from_candles(
        cls, candles: Iterable[Candle], max_length: int = DEFAULT_MAX_LENGTH
    ) -> "CandleSeries":
        series = cls(max_length=max_length)
        series.replace(candles)
        return series

    def __len__(self) -> int:
        return len(self.candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self.candles)

    def __getitem__(self, index):
        return self.candles[index]

    def is_empty(self) -> bool:
        return not self.candles

    def latest(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    def timestamps(self) -> List[int]:
        return [c.timestamp for c in self.candles]

    def replace(self, candles: Iterable[Candle]) -> None:
        """
        Replace the whole history in one shot.
        Duplicate timestamps in the input keep their first occurrence.
        """
        self.candles = []
        self.merge(candles)

    def merge(self, candles: Iterable[Candle]) -> int:
        """
        Merge incoming candles.

        A candle whose timestamp is already held is skipped (first write wins,
        also within the incoming batch). Returns how many candles were added.
        """
        seen = set(self.timestamps())
        added: List[Candle] = []

        for candle in candles:
            if candle.timestamp in seen:
                continue
            seen.add(candle.timestamp)
            added.append(candle)

        if not added:
            return 0

        merged = sorted(self.candles + added, key=lambda c: c.timestamp)
        if len(merged) > self.max_length:
            del merged[:-self.max_length]
        self.candles = merged
        return len(added)

    def to_wire(self) -> List[dict]:
        return [c.to_wire() for c in self.candles]
