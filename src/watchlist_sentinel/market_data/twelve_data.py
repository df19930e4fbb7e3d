"""Twelve Data time-series adapter (primary provider)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from watchlist_sentinel.core.exceptions import (
    ProviderError,
    RateLimitError,
    UnsupportedIntervalError,
)
from watchlist_sentinel.market_data.models import OhlcBar, to_finite, to_volume
from watchlist_sentinel.market_data.provider import HttpOhlcProvider

_BASE_URL = "https://api.twelvedata.com"
_TIME_SERIES_PATH = "/time_series"

_INTERVAL_MAP: dict[str, str] = {
    "1m": "1min",
    "1min": "1min",
    "5m": "5min",
    "15m": "15min",
    "30m": "30min",
    "1h": "1h",
    "60min": "1h",
    "1d": "1day",
    "1day": "1day",
    "1wk": "1week",
}


def _parse_datetime(value: Any) -> datetime | None:
    """Parse "YYYY-MM-DD" or "YYYY-MM-DD HH:MM:SS" as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TwelveDataProvider(HttpOhlcProvider):
    """Fetches OHLCV bars from Twelve Data's ``/time_series`` endpoint."""

    name = "twelve-data"
    api_key_env = "TWELVE_DATA_API_KEY"
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
        native = _INTERVAL_MAP.get(interval)
        if native is None:
            raise UnsupportedIntervalError(
                f"Twelve Data does not support interval {interval}",
                context={"provider": self.name, "symbol": symbol, "interval": interval},
            )

        payload = await self._get_json(
            f"{self._base_url}{_TIME_SERIES_PATH}",
            {
                "symbol": symbol,
                "interval": native,
                "outputsize": lookback,
                "order": "ASC",
                "exchange": exchange or None,
            },
            symbol,
        )

        if not isinstance(payload, dict):
            raise ProviderError(
                "Twelve Data returned a non-object payload",
                context={"provider": self.name, "symbol": symbol},
            )
        if payload.get("status") == "error":
            message = payload.get("message") or "Unknown Twelve Data API error"
            error_cls = RateLimitError if payload.get("code") == 429 else ProviderError
            raise error_cls(
                f"Twelve Data error: {message}",
                context={"provider": self.name, "symbol": symbol, "status_code": payload.get("code")},
            )

        values = payload.get("values")
        if values is None:
            return []
        return self.adapt(values, symbol, exchange, interval)

    def adapt(
        self,
        values: list[dict[str, Any]],
        symbol: str,
        exchange: str | None,
        interval: str,
    ) -> list[OhlcBar]:
        """Turn the ``values`` array into bars, skipping unusable rows."""
        if not isinstance(values, list):
            raise ProviderError(
                f"Twelve Data values are not an array: {type(values).__name__}",
                context={"provider": self.name, "symbol": symbol},
            )
        bars: list[OhlcBar] = []
        for row in values:
            if not isinstance(row, dict):
                continue
            time = _parse_datetime(row.get("datetime"))
            prices = [to_finite(row.get(k)) for k in ("open", "high", "low", "close")]
            if time is None or any(p is None for p in prices):
                continue
            bar = self._bar(
                symbol=symbol,
                exchange=exchange,
                interval=interval,
                time=time,
                open=prices[0],
                high=prices[1],
                low=prices[2],
                close=prices[3],
                volume=to_volume(row.get("volume")),
            )
            if bar is not None:
                bars.append(bar)
        return sorted(bars, key=lambda b: b.time)
