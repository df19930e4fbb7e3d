"""Shared pytest fixtures for watchlist-sentinel."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from watchlist_sentinel.core.exceptions import ProviderError
from watchlist_sentinel.core.models import WatchListEntry
from watchlist_sentinel.market_data.models import OhlcBar
from watchlist_sentinel.market_data.store import SqliteOhlcvStore
from watchlist_sentinel.watchlist.canonical_store import CanonicalWatchListStore
from watchlist_sentinel.watchlist.legacy_store import LegacyWatchListStore

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeProvider:
    """In-memory OhlcProvider that replays a canned answer."""

    def __init__(self, name: str, bars=None, error: Exception | None = None) -> None:
        self.name = name
        self._bars = bars or []
        self._error = error
        self.calls: list[tuple] = []

    def ensure_configured(self) -> None:
        return None

    async def fetch_ohlc(self, symbol, exchange, interval, lookback):
        self.calls.append((symbol, exchange, interval, lookback))
        if self._error is not None:
            raise self._error
        return list(self._bars)


# --- Clocks ---


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def legacy_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def canonical_clock() -> StepClock:
    return StepClock()


# --- Stores ---


@pytest.fixture
async def legacy_store(legacy_clock):
    """In-memory legacy store."""
    s = LegacyWatchListStore(":memory:", clock=legacy_clock)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def canonical_store(canonical_clock):
    """In-memory canonical store."""
    s = CanonicalWatchListStore(":memory:", clock=canonical_clock)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def ohlcv_store(clock):
    """In-memory OHLCV store."""
    s = SqliteOhlcvStore(":memory:", clock=clock)
    await s.initialize()
    yield s
    await s.close()


# --- Factories ---


@pytest.fixture
def make_entry():
    """Factory for WatchListEntry with overridable defaults."""

    def _make(**overrides) -> WatchListEntry:
        defaults = dict(
            id=1,
            symbol="AAPL",
            exchange="NASDAQ",
            active=True,
            created_at=T0,
            updated_at=T0,
        )
        defaults.update(overrides)
        return WatchListEntry(**defaults)

    return _make


@pytest.fixture
def make_bar():
    """Factory for OhlcBar; ``day`` offsets the timestamp from T0."""

    def _make(day: int = 0, **overrides) -> OhlcBar:
        defaults = dict(
            provider="test",
            symbol="AAPL",
            exchange="NASDAQ",
            interval="1d",
            time=T0 + timedelta(days=day),
            open=100.0 + day,
            high=101.0 + day,
            low=99.0 + day,
            close=100.5 + day,
            volume=1_000 + day,
        )
        defaults.update(overrides)
        return OhlcBar(**defaults)

    return _make


@pytest.fixture
def make_provider():
    """Factory for FakeProvider."""

    def _make(name: str = "fake", bars=None, error: Exception | None = None) -> FakeProvider:
        return FakeProvider(name, bars=bars, error=error)

    return _make


@pytest.fixture
def failing_provider(make_provider) -> FakeProvider:
    return make_provider("broken", error=ProviderError("upstream exploded", context={"provider": "broken"}))


@pytest.fixture
def provider_keys(monkeypatch):
    """Set all three provider API keys."""
    monkeypatch.setenv("TWELVE_DATA_API_KEY", "td-key")
    monkeypatch.setenv("FINNHUB_API_KEY", "fh-key")
    monkeypatch.setenv("ALPHA_VANTAGE_API_KEY", "av-key")


@pytest.fixture
def no_provider_keys(monkeypatch):
    for var in ("TWELVE_DATA_API_KEY", "FINNHUB_API_KEY", "ALPHA_VANTAGE_API_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch):
    """Keep ambient WATCHLIST_SENTINEL_* variables out of every test."""
    import os

    for key in list(os.environ):
        if key.startswith("WATCHLIST_SENTINEL_"):
            monkeypatch.delenv(key, raising=False)
