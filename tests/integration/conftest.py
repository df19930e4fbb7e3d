"""Integration test fixtures: file-backed stores, no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from watchlist_sentinel.market_data.store import SqliteOhlcvStore
from watchlist_sentinel.watchlist.canonical_store import CanonicalWatchListStore
from watchlist_sentinel.watchlist.legacy_store import LegacyWatchListStore


@pytest.fixture
async def file_stores(tmp_path: Path):
    """Legacy, canonical, and OHLCV stores on disk under tmp_path."""
    legacy = LegacyWatchListStore(str(tmp_path / "legacy.db"))
    canonical = CanonicalWatchListStore(str(tmp_path / "canonical.db"))
    ohlcv = SqliteOhlcvStore(str(tmp_path / "ohlcv.db"))
    for store in (legacy, canonical, ohlcv):
        await store.initialize()
    yield legacy, canonical, ohlcv
    for store in (legacy, canonical, ohlcv):
        await store.close()
