"""Finnhub stock candle adapter (secondary provider).

The ``/stock/candle`` endpoint answers with parallel arrays::

    {"s": "ok", "t": [...], "o": [...], "h": [...], "l": [...], "c": [...], "v": [...]}

``s == "no_data"`` is a successful empty answer; any other non-"ok" status
is an error.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from watchlist_sentinel.core.exceptions import ProviderError, UnsupportedIntervalError
from watchlist_sentinel.market_data.models import OhlcBar, to_finite, to_volume
from watchlist_sentinel.market_data.provider import HttpOhlcProvider

_BASE_URL = "https://finnhub.io/api/v1"
_CANDLE_PATH = "/stock/candle"

_RESOLUTION_MAP: dict[str, str] = {
    "1m": "1",
    "5m": "5",
    "15m": "15",
    "30m": "30",
    "1h": "60",
    "60min": "60",
    "1d": "D",
    "1day": "D",
    "1wk": "W",
}


def _epoch_to_utc(value: Any) -> datetime | None:
    seconds = to_finite(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _at(values: Any, i: int) -> Any:
    if isinstance(values, list) and i < len(values):
        return values[i]
    return None


class FinnhubProvider(HttpOhlcProvider):
    """Fetches OHLCV candles from Finnhub."""

    name = "finnhub"
    api_key_env = "FINNHUB_API_KEY"
    api_key_param = "token"

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
        resolution = _RESOLUTION_MAP.get(interval)
        if resolution is None:
            raise UnsupportedIntervalError(
                f"Finnhub does not support interval {interval}",
                context={"provider": self.name, "symbol": symbol, "interval": interval},
            )

        payload = await self._get_json(
            f"{self._base_url}{_CANDLE_PATH}",
            {"symbol": symbol, "resolution": resolution, "count": lookback},
            symbol,
        )

        status = payload.get("s") if isinstance(payload, dict) else None
        if status == "no_data":
            return []
        if status != "ok":
            raise ProviderError(
                f"Finnhub error response: {status}",
                context={"provider": self.name, "symbol": symbol},
            )
        return self.adapt(payload, symbol, exchange, interval)

    def adapt(
        self,
        payload: dict[str, Any],
        symbol: str,
        exchange: str | None,
        interval: str,
    ) -> list[OhlcBar]:
        timestamps = payload.get("t")
        if timestamps is None:
            return []
        if not isinstance(timestamps, list):
            raise ProviderError(
                f"Finnhub candle timestamps are not an array: {type(timestamps).__name__}",
                context={"provider": self.name, "symbol": symbol},
            )
        bars: list[OhlcBar] = []
        for i, ts in enumerate(timestamps):
            time = _epoch_to_utc(ts)
            prices = [to_finite(_at(payload.get(k), i)) for k in ("o", "h", "l", "c")]
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
                volume=to_volume(_at(payload.get("v"), i)),
            )
            if bar is not None:
                bars.append(bar)
        return sorted(bars, key=lambda b: b.time)
