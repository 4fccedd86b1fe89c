from __future__ import annotations

from abc import ABC, abstractmethod

from candlefeed.candles.series import CandleSeries


class ProviderError(Exception):
    """Raised inside a provider when upstream data cannot be used."""


class MarketDataProvider(ABC):
    """
    Provider contract (interface).

    Any provider must implement:
    - fetch_candles(): the most recent daily candles, ascending, never empty

    fetch_candles() must not raise: upstream problems are handled inside the
    provider.
    """

    @abstractmethod
    def fetch_candles(self) -> CandleSeries:
        raise NotImplementedError

    def close(self) -> None:
        """Release any pooled connections."""
