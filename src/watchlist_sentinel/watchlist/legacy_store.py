"""Legacy watch-list store: a flat table with an active flag and no history.

The legacy schema keeps ``exchange`` NOT NULL and stores "no exchange" as
an empty string. Every lookup goes through ``COALESCE`` so callers may pass
either ``None`` or ``""``.
"""

from __future__ import annotations

import logging
from typing import ClassVar

import aiosqlite

from watchlist_sentinel.core.exceptions import DataIntegrityError, StorageError
from watchlist_sentinel.core.models import (
    WatchListEntry,
    normalize_exchange,
    require_symbol,
)
from watchlist_sentinel.core.sqlite import (
    SCHEMA_VERSION_TABLE,
    SqliteDatabase,
    from_db_time,
)

logger = logging.getLogger(__name__)

_COLUMNS = "id, symbol, exchange, active, created_at, updated_at"


def _legacy_exchange(value: object) -> str:
    return normalize_exchange(value) or ""


class LegacyWatchListStore(SqliteDatabase):
    """Operational watch list with a simple active flag."""

    _NAME: ClassVar[str] = "legacy"
    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial watch_list schema",
            [
                SCHEMA_VERSION_TABLE,
                """CREATE TABLE IF NOT EXISTS watch_list (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    exchange TEXT NOT NULL DEFAULT '',
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(symbol, exchange)
                )""",
                "CREATE INDEX IF NOT EXISTS idx_watch_list_active ON watch_list(active)",
            ],
        ),
    }

    async def list(self) -> list[WatchListEntry]:
        try:
            async with self.db.execute(
                f"SELECT {_COLUMNS} FROM watch_list ORDER BY symbol, exchange"
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_entry(r) for r in rows]
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to list legacy watch list: {e}",
                context={"operation": "query", "table": "watch_list"},
            ) from e

    async def get_by_id(self, entry_id: int) -> WatchListEntry | None:
        try:
            async with self.db.execute(
                f"SELECT {_COLUMNS} FROM watch_list WHERE id = ?", (entry_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_entry(row) if row is not None else None
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to get legacy watch list entry {entry_id}: {e}",
                context={"operation": "query", "table": "watch_list", "id": entry_id},
            ) from e

    async def get_by_key(
        self, symbol: str, exchange: str | None = None
    ) -> WatchListEntry | None:
        try:
            async with self.db.execute(
                f"""SELECT {_COLUMNS} FROM watch_list
                    WHERE symbol = ?
                      AND COALESCE(exchange, '') = COALESCE(?, '')""",
                (symbol.strip(), _legacy_exchange(exchange)),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_entry(row) if row is not None else None
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to look up legacy watch list entry {symbol}: {e}",
                context={"operation": "query", "table": "watch_list", "symbol": symbol},
            ) from e

    async def insert(
        self, symbol: str, exchange: str | None = None, active: bool = True
    ) -> WatchListEntry:
        """Insert a new entry. Duplicate (symbol, exchange) keys fail."""
        symbol = require_symbol(symbol)
        now = self._now()
        try:
            async with self._transaction() as db:
                cursor = await db.execute(
                    """INSERT INTO watch_list
                       (symbol, exchange, active, created_at, updated_at)
                       VALUES (?, COALESCE(?, ''), ?, ?, ?)""",
                    (symbol, _legacy_exchange(exchange), int(bool(active)), now, now),
                )
                entry_id = cursor.lastrowid
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to insert legacy watch list entry {symbol}: {e}",
                context={"operation": "insert", "table": "watch_list", "symbol": symbol},
            ) from e

        entry = await self.get_by_id(entry_id)
        logger.debug("Inserted legacy watch list entry %s (%s)", symbol, exchange or "GLOBAL")
        return entry

    async def update_active(self, entry_id: int, active: bool) -> WatchListEntry:
        """Overwrite the active flag and bump ``updated_at``."""
        try:
            async with self._transaction() as db:
                cursor = await db.execute(
                    "UPDATE watch_list SET active = ?, updated_at = ? WHERE id = ?",
                    (int(bool(active)), self._now(), entry_id),
                )
                updated = cursor.rowcount
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to update legacy watch list entry {entry_id}: {e}",
                context={"operation": "update", "table": "watch_list", "id": entry_id},
            ) from e

        if updated == 0:
            raise DataIntegrityError(
                f"Legacy watch list entry {entry_id} was not found.",
                context={"table": "watch_list", "id": entry_id},
            )
        return await self.get_by_id(entry_id)

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> WatchListEntry:
        return WatchListEntry(
            id=row["id"],
            symbol=row["symbol"],
            exchange=row["exchange"],
            active=bool(row["active"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )
