from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel

from candlefeed.models.market import Candle


class CandleOut(BaseModel):
    """Wire shape of one candle: x = ms timestamp, o/h/l/c prices, v volume."""

    x: int
    o: float
    h: float
    l: float
    c: float
    v: int

    @classmethod
    def from_candle(cls, candle: Candle) -> "CandleOut":
        return cls(**candle.to_wire())

    def to_candle(self) -> Candle:
        return Candle.from_wire(self.model_dump())


class CandlesResponse(BaseModel):
    data: List[CandleOut]


class StreamMessage(BaseModel):
    """
    Server -> client real-time frame.

    type:
      - initial: full snapshot, replaces the client cache
      - update: newest candle(s), merged into the client cache
      - error: server-side problem; data is empty and `error` says why
    """

    type: Literal["initial", "update", "error"]
    data: List[CandleOut] = []
    error: Optional[str] = None

    @classmethod
    def initial(cls, candles) -> "StreamMessage":
        return cls(type="initial", data=[CandleOut.from_candle(c) for c in candles])

    @classmethod
    def update(cls, candles) -> "StreamMessage":
        return cls(type="update", data=[CandleOut.from_candle(c) for c in candles])

    @classmethod
    def failure(cls, error: str) -> "StreamMessage":
        return cls(type="error", data=[], error=error)

    def candles(self) -> List[Candle]:
        return [row.to_candle() for row in self.data]

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
