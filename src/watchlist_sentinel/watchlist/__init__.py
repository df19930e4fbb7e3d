"""Watch-list stores and the reconciliation engine between them."""

from watchlist_sentinel.watchlist.canonical_store import CanonicalWatchListStore
from watchlist_sentinel.watchlist.legacy_store import LegacyWatchListStore
from watchlist_sentinel.watchlist.sync import (
    SyncAction,
    SyncActionKind,
    SyncFailure,
    SyncReason,
    SyncReport,
    apply_sync_actions,
    plan_sync,
    resolve_conflict,
    sync_watch_lists,
)

__all__ = [
    "CanonicalWatchListStore",
    "LegacyWatchListStore",
    "SyncAction",
    "SyncActionKind",
    "SyncFailure",
    "SyncReason",
    "SyncReport",
    "apply_sync_actions",
    "plan_sync",
    "resolve_conflict",
    "sync_watch_lists",
]
