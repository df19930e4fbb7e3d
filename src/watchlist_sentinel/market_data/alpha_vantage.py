"""Alpha Vantage adapter (last-resort provider).

Daily bars come from ``TIME_SERIES_DAILY_ADJUSTED`` and intraday bars from
``TIME_SERIES_INTRADAY``. The free tier signals throttling with a ``Note`` or
``Information`` field in an HTTP 200 body, so those are mapped to
``RateLimitError`` here rather than in the shared HTTP layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, NamedTuple

from watchlist_sentinel.core.exceptions import (
    ProviderError,
    RateLimitError,
    UnsupportedIntervalError,
)
from watchlist_sentinel.market_data.models import OhlcBar, to_finite, to_volume
from watchlist_sentinel.market_data.provider import HttpOhlcProvider

_BASE_URL = "https://www.alphavantage.co/query"
_COMPACT_LIMIT = 100


class _SeriesSpec(NamedTuple):
    function: str
    native_interval: str | None
    series_key: str


_DAILY = _SeriesSpec("TIME_SERIES_DAILY_ADJUSTED", None, "Time Series (Daily)")
_HOURLY = _SeriesSpec("TIME_SERIES_INTRADAY", "60min", "Time Series (60min)")

_SERIES_MAP: dict[str, _SeriesSpec] = {
    "1d": _DAILY,
    "1day": _DAILY,
    "1h": _HOURLY,
    "60min": _HOURLY,
    "1m": _SeriesSpec("TIME_SERIES_INTRADAY", "1min", "Time Series (1min)"),
    "5m": _SeriesSpec("TIME_SERIES_INTRADAY", "5min", "Time Series (5min)"),
    "15m": _SeriesSpec("TIME_SERIES_INTRADAY", "15min", "Time Series (15min)"),
    "30m": _SeriesSpec("TIME_SERIES_INTRADAY", "30min", "Time Series (30min)"),
}


def _parse_key(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AlphaVantageProvider(HttpOhlcProvider):
    """Fetches daily or intraday series from Alpha Vantage."""

    name = "alpha-vantage"
    api_key_env = "ALPHA_VANTAGE_API_KEY"
    api_key_param = "apikey"

    def __init__(self, *args: Any, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._base_url = base_url

    async def fetch_ohlc(
        self,
        symbol: str,
        exchange: str | None,
        interval: str,
        lookback: int,
    ) -> list[OhlcBar]:
        spec = _SERIES_MAP.get(interval)
        if spec is None:
            raise UnsupportedIntervalError(
                f"Alpha Vantage does not support interval {interval}",
                context={"provider": self.name, "symbol": symbol, "interval": interval},
            )

        payload = await self._get_json(
            self._base_url,
            {
                "function": spec.function,
                "symbol": symbol,
                "interval": spec.native_interval,
                "outputsize": "full" if lookback > _COMPACT_LIMIT else "compact",
                "datatype": "json",
            },
            symbol,
        )

        if not isinstance(payload, dict):
            raise ProviderError(
                "Alpha Vantage returned a non-object payload",
                context={"provider": self.name, "symbol": symbol},
            )
        throttle = payload.get("Note") or payload.get("Information")
        if throttle:
            raise RateLimitError(
                f"Alpha Vantage throttled the request: {throttle}",
                context={"provider": self.name, "symbol": symbol},
            )
        if payload.get("Error Message"):
            raise ProviderError(
                f"Alpha Vantage error: {payload['Error Message']}",
                context={"provider": self.name, "symbol": symbol},
            )

        series = payload.get(spec.series_key)
        if series is None:
            return []
        bars = self.adapt(series, symbol, exchange, interval)
        # The API has no count parameter; keep the most recent ``lookback`` bars.
        return bars[-lookback:] if lookback > 0 else bars

    def adapt(
        self,
        series: dict[str, dict[str, Any]],
        symbol: str,
        exchange: str | None,
        interval: str,
    ) -> list[OhlcBar]:
        if not isinstance(series, dict):
            raise ProviderError(
                f"Alpha Vantage series is not an object: {type(series).__name__}",
                context={"provider": self.name, "symbol": symbol},
            )
        bars: list[OhlcBar] = []
        for stamp, row in series.items():
            if not isinstance(row, dict):
                continue
            time = _parse_key(stamp)
            prices = [
                to_finite(row.get(k))
                for k in ("1. open", "2. high", "3. low", "4. close")
            ]
            if time is None or any(p is None for p in prices):
                continue
            raw_volume = row.get("6. volume", row.get("5. volume"))
            bar = self._bar(
                symbol=symbol,
                exchange=exchange,
                interval=interval,
                time=time,
                open=prices[0],
                high=prices[1],
                low=prices[2],
                close=prices[3],
                volume=to_volume(raw_volume),
            )
            if bar is not None:
                bars.append(bar)
        return sorted(bars, key=lambda b: b.time)
