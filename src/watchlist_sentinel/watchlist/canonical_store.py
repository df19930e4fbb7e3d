"""Canonical watch-list store with an append-only activity history.

Each entry owns a series of ``asset_watch_history`` rows, one per active
interval. At most one row per entry is open (``inactive_at IS NULL``) and it
exists exactly while the entry is active. Every mutation runs in a single
transaction so the entry and its history never disagree.
"""

from __future__ import annotations

import logging
from typing import ClassVar

import aiosqlite

from watchlist_sentinel.core.exceptions import DataIntegrityError, StorageError
from watchlist_sentinel.core.models import (
    WatchHistoryEntry,
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

_WATCH_LIST_COLUMNS = "id, symbol, exchange, active, created_at, updated_at"
_HISTORY_COLUMNS = "id, watch_list_id, active_from, inactive_at"

_SELECT_BY_ID = f"SELECT {_WATCH_LIST_COLUMNS} FROM asset_watch_list WHERE id = ?"

_INSERT_HISTORY = (
    "INSERT INTO asset_watch_history (watch_list_id, active_from) VALUES (?, ?)"
)

HistoryChange = WatchHistoryEntry | None


class CanonicalWatchListStore(SqliteDatabase):
    """Source-of-truth watch list with audit history."""

    _NAME: ClassVar[str] = "canonical"
    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial asset_watch_list schema",
            [
                SCHEMA_VERSION_TABLE,
                """CREATE TABLE IF NOT EXISTS asset_watch_list (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    exchange TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
                """CREATE UNIQUE INDEX IF NOT EXISTS uq_asset_watch_list_key
                   ON asset_watch_list(symbol, COALESCE(exchange, ''))""",
                """CREATE TABLE IF NOT EXISTS asset_watch_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    watch_list_id INTEGER NOT NULL
                        REFERENCES asset_watch_list(id) ON DELETE CASCADE,
                    active_from TEXT NOT NULL,
                    inactive_at TEXT
                )""",
                """CREATE UNIQUE INDEX IF NOT EXISTS uq_asset_watch_history_open
                   ON asset_watch_history(watch_list_id) WHERE inactive_at IS NULL""",
                "CREATE INDEX IF NOT EXISTS idx_asset_watch_list_active ON asset_watch_list(active)",
            ],
        ),
    }

    # --- Writes ---

    async def create(
        self, symbol: str, exchange: str | None = None, active: bool = True
    ) -> tuple[WatchListEntry, HistoryChange]:
        """Insert an entry; an active entry also opens its first history row."""
        symbol = require_symbol(symbol)
        exchange = normalize_exchange(exchange)
        now = self._now()
        try:
            async with self._transaction() as db:
                cursor = await db.execute(
                    """INSERT INTO asset_watch_list
                       (symbol, exchange, active, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (symbol, exchange, int(bool(active)), now, now),
                )
                entry_id = cursor.lastrowid
                entry = await self._fetch_entry(db, entry_id)

                history = None
                if entry.active:
                    history = await self._open_history(db, entry_id, now)
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to create watch list entry {symbol}: {e}",
                context={"operation": "insert", "table": "asset_watch_list", "symbol": symbol},
            ) from e

        logger.debug(
            "Created canonical watch list entry %s (%s) active=%s",
            symbol,
            exchange or "GLOBAL",
            entry.active,
        )
        return entry, history

    async def set_active_status(
        self, entry_id: int, active: bool
    ) -> tuple[WatchListEntry, HistoryChange]:
        """Move an entry to ``active``, recording the transition in history.

        A no-op when the entry is already in the requested state. Raises
        DataIntegrityError when the entry does not exist or when a
        deactivation finds no open history row to close.
        """
        desired = bool(active)
        try:
            async with self._transaction() as db:
                current = await self._fetch_entry(db, entry_id)
                if current is None:
                    raise DataIntegrityError(
                        f"Asset watch list entry {entry_id} was not found.",
                        context={"table": "asset_watch_list", "id": entry_id},
                    )
                if current.active == desired:
                    return current, None

                now = self._now()
                await db.execute(
                    "UPDATE asset_watch_list SET active = ?, updated_at = ? WHERE id = ?",
                    (int(desired), now, entry_id),
                )
                entry = await self._fetch_entry(db, entry_id)

                if desired:
                    history = await self._open_history(db, entry_id, now)
                else:
                    history = await self._close_history(db, entry_id, now)
                    if history is None:
                        raise DataIntegrityError(
                            f"Asset watch list entry {entry_id} does not have an "
                            "active watch history to close.",
                            context={"table": "asset_watch_history", "id": entry_id},
                        )
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to set active status for entry {entry_id}: {e}",
                context={"operation": "update", "table": "asset_watch_list", "id": entry_id},
            ) from e

        return entry, history

    # --- Reads ---

    async def get_by_id(self, entry_id: int) -> WatchListEntry | None:
        try:
            return await self._fetch_entry(self.db, entry_id)
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to get watch list entry {entry_id}: {e}",
                context={"operation": "query", "table": "asset_watch_list", "id": entry_id},
            ) from e

    async def get_by_symbol(
        self, symbol: str, exchange: str | None = None
    ) -> WatchListEntry | None:
        symbol = require_symbol(symbol)
        try:
            async with self.db.execute(
                f"""SELECT {_WATCH_LIST_COLUMNS} FROM asset_watch_list
                    WHERE symbol = ?
                      AND COALESCE(exchange, '') = COALESCE(?, '')""",
                (symbol, normalize_exchange(exchange)),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_entry(row) if row is not None else None
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to look up watch list entry {symbol}: {e}",
                context={"operation": "query", "table": "asset_watch_list", "symbol": symbol},
            ) from e

    async def list(self) -> list[WatchListEntry]:
        return await self._select_entries("")

    async def list_active(self) -> list[WatchListEntry]:
        return await self._select_entries("WHERE active = 1")

    async def get_history(self, watch_list_id: int) -> list[WatchHistoryEntry]:
        """Return every history row of an entry, newest interval first."""
        try:
            async with self.db.execute(
                f"""SELECT {_HISTORY_COLUMNS} FROM asset_watch_history
                    WHERE watch_list_id = ?
                    ORDER BY active_from DESC, id DESC""",
                (watch_list_id,),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_history(r) for r in rows]
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to get watch history for entry {watch_list_id}: {e}",
                context={"operation": "query", "table": "asset_watch_history"},
            ) from e

    # --- Helpers ---

    async def _select_entries(self, where: str) -> list[WatchListEntry]:
        # NULL exchanges sort first, matching "ORDER BY exchange NULLS FIRST"
        try:
            async with self.db.execute(
                f"""SELECT {_WATCH_LIST_COLUMNS} FROM asset_watch_list {where}
                    ORDER BY symbol, exchange IS NOT NULL, exchange"""
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_entry(r) for r in rows]
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to list watch list entries: {e}",
                context={"operation": "query", "table": "asset_watch_list"},
            ) from e

    async def _fetch_entry(
        self, db: aiosqlite.Connection, entry_id: int
    ) -> WatchListEntry | None:
        async with db.execute(_SELECT_BY_ID, (entry_id,)) as cursor:
            row = await cursor.fetchone()
        return self._row_to_entry(row) if row is not None else None

    async def _open_history(
        self, db: aiosqlite.Connection, entry_id: int, now: str
    ) -> WatchHistoryEntry:
        cursor = await db.execute(_INSERT_HISTORY, (entry_id, now))
        return await self._fetch_history(db, cursor.lastrowid)

    async def _close_history(
        self, db: aiosqlite.Connection, entry_id: int, now: str
    ) -> WatchHistoryEntry | None:
        async with db.execute(
            f"""SELECT {_HISTORY_COLUMNS} FROM asset_watch_history
                WHERE watch_list_id = ? AND inactive_at IS NULL
                ORDER BY active_from DESC, id DESC
                LIMIT 1""",
            (entry_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        await db.execute(
            "UPDATE asset_watch_history SET inactive_at = ? WHERE id = ?",
            (now, row["id"]),
        )
        return await self._fetch_history(db, row["id"])

    async def _fetch_history(
        self, db: aiosqlite.Connection, history_id: int
    ) -> WatchHistoryEntry:
        async with db.execute(
            f"SELECT {_HISTORY_COLUMNS} FROM asset_watch_history WHERE id = ?",
            (history_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_history(row)

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

    @staticmethod
    def _row_to_history(row: aiosqlite.Row) -> WatchHistoryEntry:
        return WatchHistoryEntry(
            id=row["id"],
            watch_list_id=row["watch_list_id"],
            active_from=from_db_time(row["active_from"]),
            inactive_at=from_db_time(row["inactive_at"]),
        )
