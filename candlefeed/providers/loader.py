from candlefeed.config import Settings
from candlefeed.providers.alphavantage import AlphaVantageProvider
from candlefeed.providers.base import MarketDataProvider
from candlefeed.providers.sample import SampleProvider


def get_provider(settings: Settings) -> MarketDataProvider:
    """
    Provider loader / factory.

    Reads PROVIDER from config and returns an instance of the selected provider.
    This is the single place that knows about concrete providers.
    """
    provider_name = settings.provider.strip().upper()

    if provider_name == "ALPHAVANTAGE":
        return AlphaVantageProvider(
            api_key=settings.alphavantage_api_key,
            symbol=settings.symbol,
            limit=settings.candle_limit,
            base_url=settings.alphavantage_base_url,
            timeout_s=settings.provider_timeout_seconds,
        )

    if provider_name == "SAMPLE":
        return SampleProvider(count=settings.candle_limit)

    raise ValueError(
        f"Unknown PROVIDER='{settings.provider}'. Expected: ALPHAVANTAGE or SAMPLE"
    )
