"""Tests for the OHLCV time-series store."""

import math
from datetime import timedelta, timezone

import pytest

from watchlist_sentinel.core.exceptions import StorageError
from watchlist_sentinel.market_data.models import OhlcBar
from watchlist_sentinel.market_data.store import SqliteOhlcvStore


class TestUpsertSeries:
    async def test_inserts_and_reads_back(self, ohlcv_store: SqliteOhlcvStore, make_bar):
        written = await ohlcv_store.upsert_ohlcv_series([make_bar(day=1), make_bar(day=0)])
        assert written == 2

        bars = await ohlcv_store.get_bars("AAPL", "NASDAQ", "1d")
        assert [b.close for b in bars] == [100.5, 101.5]
        assert bars[0].provider == "test"

    async def test_empty_series_is_noop(self, ohlcv_store):
        assert await ohlcv_store.upsert_ohlcv_series([]) == 0
        assert await ohlcv_store.count() == 0

    async def test_upsert_overwrites_same_key(self, ohlcv_store, make_bar):
        await ohlcv_store.upsert_ohlcv_series([make_bar(close=100.0, provider="finnhub")])
        await ohlcv_store.upsert_ohlcv_series([make_bar(close=123.0, provider="twelve-data")])

        bars = await ohlcv_store.get_bars("AAPL", "NASDAQ", "1d")
        assert len(bars) == 1
        assert bars[0].close == 123.0
        assert bars[0].provider == "twelve-data"

    async def test_interval_is_part_of_key(self, ohlcv_store, make_bar):
        await ohlcv_store.upsert_ohlcv_series([make_bar(interval="1d"), make_bar(interval="1h")])
        assert await ohlcv_store.count() == 2

    async def test_null_exchange_round_trip(self, ohlcv_store, make_bar):
        await ohlcv_store.upsert_ohlcv_series([make_bar(symbol="BTCUSD", exchange=None)])
        await ohlcv_store.upsert_ohlcv_series([make_bar(symbol="BTCUSD", exchange=None, close=7.0)])

        bars = await ohlcv_store.get_bars("BTCUSD", None, "1d")
        assert len(bars) == 1
        assert bars[0].exchange is None
        assert bars[0].close == 7.0

    async def test_non_finite_value_rolls_back_whole_series(self, ohlcv_store, make_bar):
        good = make_bar(day=0)
        bad = OhlcBar.model_construct(**{**make_bar(day=1).model_dump(), "high": math.inf})

        with pytest.raises(StorageError, match="Non-finite high"):
            await ohlcv_store.upsert_ohlcv_series([good, bad])
        assert await ohlcv_store.count() == 0

    async def test_range_filter(self, ohlcv_store, make_bar):
        bars = [make_bar(day=d) for d in range(5)]
        await ohlcv_store.upsert_ohlcv_series(bars)

        window = await ohlcv_store.get_bars(
            "AAPL", "NASDAQ", "1d", start=bars[1].time, end=bars[3].time
        )
        assert [b.time for b in window] == [b.time for b in bars[1:4]]

    async def test_single_row_upsert(self, ohlcv_store, make_bar):
        await ohlcv_store.upsert_ohlcv_row(make_bar())
        assert await ohlcv_store.count() == 1

    async def test_time_stored_in_utc(self, ohlcv_store, make_bar):
        bar = make_bar()
        shifted = bar.model_copy(update={"time": bar.time.astimezone(timezone(timedelta(hours=2)))})
        await ohlcv_store.upsert_ohlcv_series([bar])
        await ohlcv_store.upsert_ohlcv_series([shifted])
        assert await ohlcv_store.count() == 1