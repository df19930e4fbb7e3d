"""Tests for the market-data provider adapters and registry."""

from datetime import datetime, timezone

import httpx
import pytest
import respx

from watchlist_sentinel.core.config import ProvidersConfig
from watchlist_sentinel.core.exceptions import (
    ConfigError,
    ProviderError,
    RateLimitError,
    UnsupportedIntervalError,
)
from watchlist_sentinel.market_data.alpha_vantage import AlphaVantageProvider
from watchlist_sentinel.market_data.finnhub import FinnhubProvider
from watchlist_sentinel.market_data.provider import OhlcProvider, read_api_key
from watchlist_sentinel.market_data.registry import get_ohlc_providers
from watchlist_sentinel.market_data.twelve_data import TwelveDataProvider

TD_URL = "https://api.twelvedata.com/time_series"
FH_URL = "https://finnhub.io/api/v1/stock/candle"
AV_URL = "https://www.alphavantage.co/query"


# --- API keys ---


class TestReadApiKey:
    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("SOME_KEY", "  secret ")
        assert read_api_key("SOME_KEY", "x") == "secret"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("SOME_KEY", raising=False)
        with pytest.raises(ConfigError, match="Missing"):
            read_api_key("SOME_KEY", "x")

    def test_blank_key(self, monkeypatch):
        monkeypatch.setenv("SOME_KEY", "   ")
        with pytest.raises(ConfigError):
            read_api_key("SOME_KEY", "x")

    def test_demo_key(self, monkeypatch):
        monkeypatch.setenv("SOME_KEY", "demo")
        with pytest.raises(ConfigError, match="demo"):
            read_api_key("SOME_KEY", "x")

    @respx.mock
    async def test_missing_key_raises_before_any_request(self, no_provider_keys):
        route = respx.get(TD_URL).mock(return_value=httpx.Response(200, json={"values": []}))
        with pytest.raises(ConfigError):
            await TwelveDataProvider().fetch_ohlc("AAPL", None, "1d", 5)
        assert route.call_count == 0


# --- Twelve Data ---


class TestTwelveData:
    @respx.mock
    async def test_parses_and_sorts(self, provider_keys):
        route = respx.get(TD_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "status": "ok",
                    "values": [
                        {"datetime": "2024-01-03", "open": "11", "high": "12", "low": "10", "close": "11.5", "volume": "200"},
                        {"datetime": "2024-01-02", "open": "10", "high": "11", "low": "9", "close": "10.5", "volume": "100.4"},
                    ],
                },
            )
        )
        bars = await TwelveDataProvider().fetch_ohlc("AAPL", "NASDAQ", "1d", 2)

        assert [b.time for b in bars] == [
            datetime(2024, 1, 2, tzinfo=timezone.utc),
            datetime(2024, 1, 3, tzinfo=timezone.utc),
        ]
        assert bars[0].volume == 100
        assert bars[0].provider == "twelve-data"
        params = route.calls.last.request.url.params
        assert params["interval"] == "1day"
        assert params["outputsize"] == "2"
        assert params["exchange"] == "NASDAQ"
        assert params["apikey"] == "td-key"

    @respx.mock
    async def test_omits_unknown_exchange(self, provider_keys):
        route = respx.get(TD_URL).mock(return_value=httpx.Response(200, json={"values": []}))
        await TwelveDataProvider().fetch_ohlc("BTCUSD", None, "1h", 5)
        params = route.calls.last.request.url.params
        assert "exchange" not in params
        assert params["interval"] == "1h"

    @respx.mock
    async def test_drops_invalid_bars(self, provider_keys):
        respx.get(TD_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "values": [
                        {"datetime": "garbage", "open": "1", "high": "1", "low": "1", "close": "1"},
                        {"datetime": "2024-01-02", "open": "NaN", "high": "1", "low": "1", "close": "1"},
                        {"datetime": "2024-01-03 15:30:00", "open": "1", "high": "2", "low": "0.5", "close": "1.5"},
                    ]
                },
            )
        )
        bars = await TwelveDataProvider().fetch_ohlc("AAPL", None, "1h", 3)
        assert len(bars) == 1
        assert bars[0].time == datetime(2024, 1, 3, 15, 30, tzinfo=timezone.utc)
        assert bars[0].volume == 0

    @respx.mock
    async def test_error_status_raises(self, provider_keys):
        respx.get(TD_URL).mock(
            return_value=httpx.Response(200, json={"status": "error", "code": 400, "message": "symbol not found"})
        )
        with pytest.raises(ProviderError, match="symbol not found"):
            await TwelveDataProvider().fetch_ohlc("NOPE", None, "1d", 5)

    @respx.mock
    async def test_in_payload_throttle(self, provider_keys):
        respx.get(TD_URL).mock(
            return_value=httpx.Response(200, json={"status": "error", "code": 429, "message": "limit"})
        )
        with pytest.raises(RateLimitError):
            await TwelveDataProvider().fetch_ohlc("AAPL", None, "1d", 5)

    @respx.mock
    async def test_missing_values_is_empty(self, provider_keys):
        respx.get(TD_URL).mock(return_value=httpx.Response(200, json={"status": "ok"}))
        assert await TwelveDataProvider().fetch_ohlc("AAPL", None, "1d", 5) == []

    @respx.mock
    async def test_non_array_values_is_provider_error(self, provider_keys):
        respx.get(TD_URL).mock(return_value=httpx.Response(200, json={"values": {"close": "1"}}))
        with pytest.raises(ProviderError, match="not an array"):
            await TwelveDataProvider().fetch_ohlc("AAPL", None, "1d", 5)

    async def test_unsupported_interval(self, provider_keys):
        with pytest.raises(UnsupportedIntervalError) as exc_info:
            await TwelveDataProvider().fetch_ohlc("AAPL", None, "3d", 5)
        assert exc_info.value.context["interval"] == "3d"


# --- Finnhub ---


class TestFinnhub:
    @respx.mock
    async def test_parses_parallel_arrays(self, provider_keys):
        route = respx.get(FH_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "s": "ok",
                    "t": [1704240000, 1704153600],
                    "o": [11, 10],
                    "h": [12, 11],
                    "l": [10, 9],
                    "c": [11.5, 10.5],
                    "v": [200, 100],
                },
            )
        )
        bars = await FinnhubProvider().fetch_ohlc("AAPL", "NASDAQ", "1d", 2)

        assert [b.close for b in bars] == [10.5, 11.5]
        assert bars[0].time == datetime(2024, 1, 2, tzinfo=timezone.utc)
        params = route.calls.last.request.url.params
        assert params["resolution"] == "D"
        assert params["count"] == "2"
        assert params["token"] == "fh-key"

    @respx.mock
    async def test_no_data_is_empty(self, provider_keys):
        respx.get(FH_URL).mock(return_value=httpx.Response(200, json={"s": "no_data"}))
        assert await FinnhubProvider().fetch_ohlc("AAPL", None, "1h", 5) == []

    @respx.mock
    async def test_other_status_raises(self, provider_keys):
        respx.get(FH_URL).mock(return_value=httpx.Response(200, json={"s": "error"}))
        with pytest.raises(ProviderError):
            await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 5)

    @respx.mock
    async def test_short_arrays_drop_bars(self, provider_keys):
        respx.get(FH_URL).mock(
            return_value=httpx.Response(
                200,
                json={"s": "ok", "t": [1704153600, 1704240000], "o": [10], "h": [11], "l": [9], "c": [10.5]},
            )
        )
        bars = await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 2)
        assert len(bars) == 1

    @respx.mock
    async def test_http_429_is_rate_limit(self, provider_keys):
        respx.get(FH_URL).mock(return_value=httpx.Response(429, headers={"Retry-After": "30"}))
        with pytest.raises(RateLimitError) as exc_info:
            await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 5)
        assert exc_info.value.context["retry_after"] == 30

    @respx.mock
    async def test_http_500_is_provider_error(self, provider_keys):
        respx.get(FH_URL).mock(return_value=httpx.Response(500, text="boom"))
        with pytest.raises(ProviderError, match="HTTP 500") as exc_info:
            await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 5)
        assert exc_info.value.context["status_code"] == 500

    @respx.mock
    async def test_timeout_is_provider_error(self, provider_keys):
        respx.get(FH_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(ProviderError, match="timed out"):
            await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 5)

    @respx.mock
    async def test_malformed_json_is_provider_error(self, provider_keys):
        respx.get(FH_URL).mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="malformed"):
            await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 5)

    @respx.mock
    async def test_scalar_timestamps_is_provider_error(self, provider_keys):
        respx.get(FH_URL).mock(return_value=httpx.Response(200, json={"s": "ok", "t": 1700000000}))
        with pytest.raises(ProviderError, match="not an array"):
            await FinnhubProvider().fetch_ohlc("AAPL", None, "1d", 5)


# --- Alpha Vantage ---


def _av_daily(n: int) -> dict:
    series = {
        f"2024-01-{day:02d}": {
            "1. open": "10",
            "2. high": "11",
            "3. low": "9",
            "4. close": str(10 + day),
            "5. adjusted close": "10",
            "6. volume": "1000",
        }
        for day in range(1, n + 1)
    }
    return {"Meta Data": {}, "Time Series (Daily)": series}


class TestAlphaVantage:
    @respx.mock
    async def test_daily_series(self, provider_keys):
        route = respx.get(AV_URL).mock(return_value=httpx.Response(200, json=_av_daily(5)))
        bars = await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1d", 3)

        assert len(bars) == 3
        assert [b.close for b in bars] == [13.0, 14.0, 15.0]
        assert bars[0].volume == 1000
        params = route.calls.last.request.url.params
        assert params["function"] == "TIME_SERIES_DAILY_ADJUSTED"
        assert params["outputsize"] == "compact"
        assert "interval" not in params

    @respx.mock
    async def test_full_output_for_long_lookback(self, provider_keys):
        route = respx.get(AV_URL).mock(return_value=httpx.Response(200, json=_av_daily(2)))
        await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1d", 250)
        assert route.calls.last.request.url.params["outputsize"] == "full"

    @respx.mock
    async def test_hourly_uses_intraday(self, provider_keys):
        route = respx.get(AV_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "Time Series (60min)": {
                        "2024-01-02 10:00:00": {"1. open": "1", "2. high": "2", "3. low": "0.5", "4. close": "1.5", "5. volume": "77"}
                    }
                },
            )
        )
        bars = await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1h", 10)
        params = route.calls.last.request.url.params
        assert params["function"] == "TIME_SERIES_INTRADAY"
        assert params["interval"] == "60min"
        assert bars[0].volume == 77

    @respx.mock
    async def test_note_is_rate_limit(self, provider_keys):
        respx.get(AV_URL).mock(
            return_value=httpx.Response(200, json={"Note": "Thank you for using Alpha Vantage!"})
        )
        with pytest.raises(RateLimitError):
            await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1d", 5)

    @respx.mock
    async def test_error_message(self, provider_keys):
        respx.get(AV_URL).mock(
            return_value=httpx.Response(200, json={"Error Message": "Invalid API call."})
        )
        with pytest.raises(ProviderError, match="Invalid API call"):
            await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1d", 5)

    @respx.mock
    async def test_non_object_series_is_provider_error(self, provider_keys):
        respx.get(AV_URL).mock(
            return_value=httpx.Response(200, json={"Time Series (Daily)": ["2024-01-02"]})
        )
        with pytest.raises(ProviderError, match="not an object"):
            await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1d", 5)

    async def test_unsupported_interval(self, provider_keys):
        with pytest.raises(UnsupportedIntervalError):
            await AlphaVantageProvider().fetch_ohlc("AAPL", None, "1wk", 5)


# --- Registry ---


class TestRegistry:
    def test_default_order(self):
        providers = get_ohlc_providers()
        assert [p.name for p in providers] == ["twelve-data", "finnhub", "alpha-vantage"]
        assert all(isinstance(p, OhlcProvider) for p in providers)

    def test_configured_order(self):
        providers = get_ohlc_providers(ProvidersConfig(order=["finnhub"]))
        assert [p.name for p in providers] == ["finnhub"]
