# candlefeed/config.py
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str
    log_level: str
    provider: str
    host: str
    port: int
    public_dir: str

    # Provider config (Alpha Vantage)
    alphavantage_api_key: Optional[str]
    alphavantage_base_url: str
    symbol: str
    candle_limit: int
    provider_timeout_seconds: float

    # Real-time feed
    broadcast_interval_seconds: float


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.

    A missing ALPHAVANTAGE_API_KEY is not an error: the provider serves
    sample candles instead.
    """
    api_key = os.getenv("ALPHAVANTAGE_API_KEY", "").strip() or None

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        provider=os.getenv("PROVIDER", "ALPHAVANTAGE"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        public_dir=os.getenv("PUBLIC_DIR", "public"),
        alphavantage_api_key=api_key,
        alphavantage_base_url=os.getenv(
            "ALPHAVANTAGE_BASE_URL", "https://www.alphavantage.co/query"
        ),
        symbol=os.getenv("STOCK_SYMBOL", "AAPL").strip().upper(),
        candle_limit=int(os.getenv("CANDLE_LIMIT", "30")),
        provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        broadcast_interval_seconds=float(os.getenv("BROADCAST_INTERVAL_SECONDS", "5")),
    )
