"""Two-store watch-list reconciliation.

Planning and execution are separate:

    legacy snapshot ─┐
                     ├─ plan_sync() → list[SyncAction] → apply_sync_actions()
    canonical snapshot ┘

``plan_sync`` is a pure function of the two snapshots. ``apply_sync_actions``
writes each action to its target store in turn. There is no cross-store
transaction: a crash between two writes leaves the stores diverged until
the next run, which replans from fresh snapshots and converges again.

Conflict rule for a key present in both stores with different ``active``
flags: the side with the strictly newer ``updated_at`` wins; a side with a
timestamp beats a side without one; equal or missing timestamps on both
sides resolve in favor of the canonical store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import StrEnum
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from watchlist_sentinel.core.exceptions import StorageError
from watchlist_sentinel.core.models import (
    StoreName,
    WatchKey,
    WatchListEntry,
    normalize_exchange,
)
from watchlist_sentinel.watchlist.canonical_store import CanonicalWatchListStore
from watchlist_sentinel.watchlist.legacy_store import LegacyWatchListStore

logger = logging.getLogger(__name__)


class SyncActionKind(StrEnum):
    """What a planned action does, and to which store."""

    CREATE_LEGACY = "create_legacy"
    CREATE_CANONICAL = "create_canonical"
    UPDATE_LEGACY = "update_legacy"
    UPDATE_CANONICAL = "update_canonical"


class SyncReason(StrEnum):
    """Why the planner chose an action."""

    MISSING_IN_LEGACY = "missing_in_legacy"
    MISSING_IN_CANONICAL = "missing_in_canonical"
    CANONICAL_NEWER = "canonical_newer"
    LEGACY_NEWER = "legacy_newer"
    TIE_CANONICAL_WINS = "tie_canonical_wins"


class SyncAction(BaseModel):
    """One write the sync engine intends to perform."""

    model_config = ConfigDict(frozen=True)

    kind: SyncActionKind
    reason: SyncReason
    symbol: str
    exchange: str | None = None
    active: bool
    target_id: int | None = None

    @property
    def target_store(self) -> StoreName:
        if self.kind in (SyncActionKind.CREATE_LEGACY, SyncActionKind.UPDATE_LEGACY):
            return StoreName.LEGACY
        return StoreName.CANONICAL

    def describe(self) -> str:
        verb = "Creating" if self.kind.value.startswith("create") else "Updating"
        return (
            f"{verb} {self.target_store} entry for {self.symbol} "
            f"({self.exchange or 'GLOBAL'}) active={self.active} [{self.reason}]"
        )


class SyncFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: SyncAction
    error: str


class SyncReport(BaseModel):
    """Outcome of one reconciliation pass."""

    keys_examined: int
    applied: list[SyncAction] = []
    failed: list[SyncFailure] = []
    started_at: datetime
    finished_at: datetime | None = None

    @property
    def in_sync(self) -> bool:
        return not self.applied and not self.failed


# --- Planning ---


def _index_by_key(entries: Iterable[WatchListEntry], store: StoreName) -> dict[WatchKey, WatchListEntry]:
    index: dict[WatchKey, WatchListEntry] = {}
    for entry in entries:
        if entry.key in index:
            logger.warning(
                "Duplicate %s watch list key %s (%s); keeping id=%d",
                store,
                entry.symbol,
                entry.display_exchange,
                index[entry.key].id,
            )
            continue
        index[entry.key] = entry
    return index


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_newer(candidate: datetime | None, other: datetime | None) -> bool:
    """True when ``candidate`` strictly beats ``other``; a missing time never wins."""
    candidate = _as_utc(candidate)
    other = _as_utc(other)
    if candidate is None:
        return False
    if other is None:
        return True
    return candidate > other


def resolve_conflict(
    legacy: WatchListEntry, canonical: WatchListEntry
) -> SyncAction | None:
    """Decide which side wins for a key present in both stores."""
    if legacy.active == canonical.active:
        return None

    if _is_newer(canonical.updated_at, legacy.updated_at):
        return SyncAction(
            kind=SyncActionKind.UPDATE_LEGACY,
            reason=SyncReason.CANONICAL_NEWER,
            symbol=canonical.symbol,
            exchange=canonical.exchange,
            active=canonical.active,
            target_id=legacy.id,
        )

    if _is_newer(legacy.updated_at, canonical.updated_at):
        return SyncAction(
            kind=SyncActionKind.UPDATE_CANONICAL,
            reason=SyncReason.LEGACY_NEWER,
            symbol=legacy.symbol,
            exchange=legacy.exchange,
            active=legacy.active,
            target_id=canonical.id,
        )

    return SyncAction(
        kind=SyncActionKind.UPDATE_LEGACY,
        reason=SyncReason.TIE_CANONICAL_WINS,
        symbol=canonical.symbol,
        exchange=canonical.exchange,
        active=canonical.active,
        target_id=legacy.id,
    )


def plan_sync(
    legacy_entries: Iterable[WatchListEntry],
    canonical_entries: Iterable[WatchListEntry],
) -> list[SyncAction]:
    """Compute the writes that bring both stores into agreement.

    Keys are visited in sorted order so the plan is deterministic.
    """
    legacy_index = _index_by_key(legacy_entries, StoreName.LEGACY)
    canonical_index = _index_by_key(canonical_entries, StoreName.CANONICAL)

    actions: list[SyncAction] = []
    for key in sorted(set(legacy_index) | set(canonical_index)):
        legacy = legacy_index.get(key)
        canonical = canonical_index.get(key)

        if canonical is not None and legacy is None:
            actions.append(
                SyncAction(
                    kind=SyncActionKind.CREATE_LEGACY,
                    reason=SyncReason.MISSING_IN_LEGACY,
                    symbol=canonical.symbol,
                    exchange=canonical.exchange,
                    active=canonical.active,
                )
            )
        elif legacy is not None and canonical is None:
            actions.append(
                SyncAction(
                    kind=SyncActionKind.CREATE_CANONICAL,
                    reason=SyncReason.MISSING_IN_CANONICAL,
                    symbol=legacy.symbol,
                    exchange=legacy.exchange,
                    active=legacy.active,
                )
            )
        else:
            action = resolve_conflict(legacy, canonical)
            if action is not None:
                actions.append(action)

    return actions


# --- Execution ---


async def _apply_one(
    action: SyncAction,
    legacy: LegacyWatchListStore,
    canonical: CanonicalWatchListStore,
) -> None:
    if action.kind == SyncActionKind.CREATE_LEGACY:
        await legacy.insert(action.symbol, action.exchange or "", action.active)
    elif action.kind == SyncActionKind.CREATE_CANONICAL:
        await canonical.create(action.symbol, normalize_exchange(action.exchange), action.active)
    elif action.kind == SyncActionKind.UPDATE_LEGACY:
        await legacy.update_active(action.target_id, action.active)
    elif action.kind == SyncActionKind.UPDATE_CANONICAL:
        await canonical.set_active_status(action.target_id, action.active)


async def apply_sync_actions(
    actions: Iterable[SyncAction],
    legacy: LegacyWatchListStore,
    canonical: CanonicalWatchListStore,
    report: SyncReport | None = None,
) -> SyncReport:
    """Execute planned actions one at a time.

    A StorageError fails only its own action. DataIntegrityError and
    ConfigError propagate and end the pass.
    """
    if report is None:
        report = SyncReport(keys_examined=0, started_at=datetime.now(timezone.utc))
    for action in actions:
        logger.info("[watch-list:sync] %s", action.describe())
        try:
            await _apply_one(action, legacy, canonical)
        except StorageError as e:
            logger.error(
                "[watch-list:sync] Failed to apply %s for %s (%s): %s",
                action.kind,
                action.symbol,
                action.exchange or "GLOBAL",
                e,
            )
            report.failed.append(SyncFailure(action=action, error=str(e)))
            continue
        report.applied.append(action)
    return report


async def sync_watch_lists(
    legacy: LegacyWatchListStore,
    canonical: CanonicalWatchListStore,
) -> SyncReport:
    """Run one reconciliation pass over the union of keys in both stores."""
    logger.info("[watch-list:sync] Starting synchronization")
    started_at = datetime.now(timezone.utc)

    legacy_entries = await legacy.list()
    canonical_entries = await canonical.list()
    actions = plan_sync(legacy_entries, canonical_entries)

    keys = {e.key for e in legacy_entries} | {e.key for e in canonical_entries}
    report = SyncReport(keys_examined=len(keys), started_at=started_at)
    await apply_sync_actions(actions, legacy, canonical, report)
    report.finished_at = datetime.now(timezone.utc)

    if report.failed:
        logger.warning(
            "[watch-list:sync] Completed with %d applied, %d failed",
            len(report.applied),
            len(report.failed),
        )
    else:
        logger.info(
            "[watch-list:sync] Synchronization completed successfully (%d applied)",
            len(report.applied),
        )
    return report
