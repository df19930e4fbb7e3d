"""Market data: provider adapters, fallback collection, and OHLCV storage."""

from watchlist_sentinel.market_data.alpha_vantage import AlphaVantageProvider
from watchlist_sentinel.market_data.collector import (
    collect_daily_ohlc,
    collect_hourly_ohlc,
    collect_watch_list_ohlc,
    fetch_outcome,
    fetch_with_fallback,
    normalize_interval,
    normalize_lookback,
)
from watchlist_sentinel.market_data.finnhub import FinnhubProvider
from watchlist_sentinel.market_data.models import (
    CollectionReport,
    FetchEmpty,
    FetchExhausted,
    FetchFailed,
    FetchOk,
    FetchOutcome,
    OhlcBar,
    SymbolOutcome,
    SymbolStatus,
)
from watchlist_sentinel.market_data.provider import (
    HttpOhlcProvider,
    OhlcProvider,
    read_api_key,
)
from watchlist_sentinel.market_data.registry import get_ohlc_providers
from watchlist_sentinel.market_data.store import SqliteOhlcvStore
from watchlist_sentinel.market_data.twelve_data import TwelveDataProvider

__all__ = [
    # Models
    "OhlcBar",
    "FetchOk",
    "FetchEmpty",
    "FetchFailed",
    "FetchExhausted",
    "FetchOutcome",
    "SymbolStatus",
    "SymbolOutcome",
    "CollectionReport",
    # Providers
    "OhlcProvider",
    "HttpOhlcProvider",
    "TwelveDataProvider",
    "FinnhubProvider",
    "AlphaVantageProvider",
    "get_ohlc_providers",
    "read_api_key",
    # Storage
    "SqliteOhlcvStore",
    # Collection
    "collect_watch_list_ohlc",
    "collect_daily_ohlc",
    "collect_hourly_ohlc",
    "fetch_outcome",
    "fetch_with_fallback",
    "normalize_interval",
    "normalize_lookback",
]
