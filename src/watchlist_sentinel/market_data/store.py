"""SQLite-backed OHLCV time-series storage.

Rows are keyed by ``(symbol, exchange, interval, time)``. A missing exchange
is stored as ``''`` so the key stays unique. Writes overwrite the stored
values of an existing key.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import ClassVar, Iterable

import aiosqlite

from watchlist_sentinel.core.exceptions import StorageError
from watchlist_sentinel.core.sqlite import (
    SCHEMA_VERSION_TABLE,
    SqliteDatabase,
    from_db_time,
    to_db_time,
)
from watchlist_sentinel.market_data.models import OhlcBar

logger = logging.getLogger(__name__)

_UPSERT = """INSERT INTO ohlcv_data
    (symbol, exchange, interval, time, open, high, low, close, volume, provider, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(symbol, exchange, interval, time) DO UPDATE SET
        open = excluded.open,
        high = excluded.high,
        low = excluded.low,
        close = excluded.close,
        volume = excluded.volume,
        provider = excluded.provider,
        updated_at = excluded.updated_at"""


def _finite(value: float, field: str, bar: OhlcBar) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise StorageError(
            f"Non-finite {field} for {bar.symbol} at {bar.time.isoformat()}",
            context={"operation": "upsert_ohlcv", "symbol": bar.symbol, "field": field},
        )
    return number


class SqliteOhlcvStore(SqliteDatabase):
    """Upsert-only OHLCV store.

    Parameters
    ----------
    path : str
        SQLite file path, or ``:memory:``.
    """

    _NAME: ClassVar[str] = "ohlcv"
    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial ohlcv_data schema",
            [
                SCHEMA_VERSION_TABLE,
                """CREATE TABLE IF NOT EXISTS ohlcv_data (
                    symbol TEXT NOT NULL,
                    exchange TEXT NOT NULL DEFAULT '',
                    interval TEXT NOT NULL,
                    time TEXT NOT NULL,
                    open REAL NOT NULL,
                    high REAL NOT NULL,
                    low REAL NOT NULL,
                    close REAL NOT NULL,
                    volume INTEGER NOT NULL DEFAULT 0,
                    provider TEXT NOT NULL DEFAULT 'unknown',
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (symbol, exchange, interval, time)
                )""",
                "CREATE INDEX IF NOT EXISTS idx_ohlcv_symbol_interval ON ohlcv_data(symbol, interval)",
            ],
        ),
    }

    def _row_params(self, bar: OhlcBar, updated_at: str) -> tuple:
        return (
            bar.symbol,
            bar.exchange or "",
            bar.interval,
            to_db_time(bar.time),
            _finite(bar.open, "open", bar),
            _finite(bar.high, "high", bar),
            _finite(bar.low, "low", bar),
            _finite(bar.close, "close", bar),
            max(0, round(bar.volume)),
            bar.provider,
            updated_at,
        )

    async def upsert_ohlcv_row(self, bar: OhlcBar) -> None:
        """Upsert a single bar in its own transaction."""
        await self.upsert_ohlcv_series([bar])

    async def upsert_ohlcv_series(self, bars: Iterable[OhlcBar]) -> int:
        """Upsert all bars atomically. Returns the number of rows written.

        Any failure rolls the whole series back and raises StorageError.
        """
        bars = list(bars)
        if not bars:
            return 0

        now = self._now()
        try:
            async with self._transaction() as db:
                for bar in bars:
                    await db.execute(_UPSERT, self._row_params(bar, now))
        except StorageError:
            raise
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to upsert OHLCV series: {e}",
                context={
                    "operation": "upsert_ohlcv_series",
                    "symbol": bars[0].symbol,
                    "rows": len(bars),
                },
            ) from e

        logger.debug("Upserted %d %s bars for %s", len(bars), bars[0].interval, bars[0].symbol)
        return len(bars)

    async def get_bars(
        self,
        symbol: str,
        exchange: str | None,
        interval: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[OhlcBar]:
        """Stored bars for one series, oldest first. Bounds are inclusive."""
        sql = (
            "SELECT symbol, exchange, interval, time, open, high, low, close, volume, provider "
            "FROM ohlcv_data WHERE symbol = ? AND exchange = COALESCE(?, '') AND interval = ?"
        )
        params: list = [symbol, exchange or None, interval]
        if start is not None:
            sql += " AND time >= ?"
            params.append(to_db_time(start))
        if end is not None:
            sql += " AND time <= ?"
            params.append(to_db_time(end))
        sql += " ORDER BY time"

        try:
            async with self.db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to read OHLCV bars: {e}",
                context={"operation": "get_bars", "symbol": symbol},
            ) from e

        return [
            OhlcBar(
                provider=row["provider"],
                symbol=row["symbol"],
                exchange=row["exchange"] or None,
                interval=row["interval"],
                time=from_db_time(row["time"]),
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                volume=row["volume"],
            )
            for row in rows
        ]

    async def count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM ohlcv_data") as cursor:
            row = await cursor.fetchone()
        return row[0]
