"""OHLC collection job over the canonical watch list.

For each active canonical entry the providers are tried in registry order
until one returns bars; those bars are upserted as one series. Provider and
storage failures are isolated to the entry they happened on. A
``ConfigError`` aborts the whole run before any request is made.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Sequence

from watchlist_sentinel.core.exceptions import ConfigError, ProviderError, StorageError
from watchlist_sentinel.core.models import WatchListEntry, normalize_exchange
from watchlist_sentinel.core.sqlite import utc_now
from watchlist_sentinel.market_data.models import (
    DEFAULT_INTERVAL,
    DEFAULT_LOOKBACK,
    CollectionReport,
    FetchEmpty,
    FetchExhausted,
    FetchFailed,
    FetchOk,
    FetchOutcome,
    SymbolOutcome,
    SymbolStatus,
)
from watchlist_sentinel.market_data.provider import OhlcProvider
from watchlist_sentinel.market_data.registry import get_ohlc_providers
from watchlist_sentinel.market_data.store import SqliteOhlcvStore
from watchlist_sentinel.watchlist.canonical_store import CanonicalWatchListStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

DAILY_PRESET = ("1d", 7)
HOURLY_PRESET = ("1h", 168)


def normalize_interval(value: Any) -> str:
    """Trimmed interval string; blank or missing means the daily default."""
    if value is None:
        return DEFAULT_INTERVAL
    text = str(value).strip()
    return text or DEFAULT_INTERVAL


def normalize_lookback(value: Any) -> int:
    """Rounded bar count with a floor of 1; non-numeric means the default."""
    if isinstance(value, bool):
        return DEFAULT_LOOKBACK
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LOOKBACK
    if not math.isfinite(number):
        return DEFAULT_LOOKBACK
    return max(1, round(number))


async def fetch_outcome(
    provider: OhlcProvider,
    symbol: str,
    exchange: str | None,
    interval: str,
    lookback: int,
) -> FetchOutcome:
    """Call one provider and classify the result.

    Any error raised by the provider becomes FetchFailed, except
    ConfigError, which aborts the run.
    """
    try:
        bars = await provider.fetch_ohlc(symbol, exchange, interval, lookback)
    except ConfigError:
        raise
    except ProviderError as e:
        return FetchFailed(provider=provider.name, reason=str(e))
    except Exception as e:
        logger.debug("[ohlc] %s raised unexpectedly for %s", provider.name, symbol, exc_info=True)
        return FetchFailed(provider=provider.name, reason=f"{type(e).__name__}: {e}")
    if not bars:
        return FetchEmpty(provider=provider.name)
    return FetchOk(provider=provider.name, bars=list(bars))


async def fetch_with_fallback(
    providers: Sequence[OhlcProvider],
    symbol: str,
    exchange: str | None,
    interval: str,
    lookback: int,
    request_delay_ms: int = 0,
    sleep: Sleep = asyncio.sleep,
) -> FetchOk | FetchExhausted:
    """Try providers in order; the first non-empty result wins."""
    attempts: list[FetchEmpty | FetchFailed] = []
    for i, provider in enumerate(providers):
        if i > 0 and request_delay_ms > 0:
            await sleep(request_delay_ms / 1000)

        outcome = await fetch_outcome(provider, symbol, exchange, interval, lookback)
        match outcome:
            case FetchOk():
                return outcome
            case FetchEmpty():
                logger.warning(
                    "[ohlc] %s returned no data for %s (%s)", outcome.provider, symbol, interval
                )
            case FetchFailed():
                logger.warning(
                    "[ohlc] %s failed for %s: %s", outcome.provider, symbol, outcome.reason
                )
        attempts.append(outcome)
    return FetchExhausted(attempts=attempts)


async def _collect_entry(
    entry: WatchListEntry,
    providers: Sequence[OhlcProvider],
    ohlcv_store: SqliteOhlcvStore,
    interval: str,
    lookback: int,
    request_delay_ms: int,
    sleep: Sleep,
) -> SymbolOutcome:
    symbol = (entry.symbol or "").strip()
    exchange = normalize_exchange(entry.exchange)
    if not symbol:
        logger.warning("[ohlc] Skipping watch entry %s without a symbol", entry.id)
        return SymbolOutcome(symbol="", exchange=exchange, status=SymbolStatus.SKIPPED)

    result = await fetch_with_fallback(
        providers, symbol, exchange, interval, lookback, request_delay_ms, sleep
    )
    if isinstance(result, FetchExhausted):
        logger.warning("[ohlc] No provider returned data for %s", symbol)
        return SymbolOutcome(
            symbol=symbol,
            exchange=exchange,
            status=SymbolStatus.NO_DATA,
            attempts=[a.provider for a in result.attempts],
        )

    # Bars are stored under the watch entry's identity, not the vendor's echo.
    bars = [
        bar.model_copy(update={"symbol": symbol, "exchange": exchange, "interval": interval})
        for bar in result.bars
    ]
    try:
        written = await ohlcv_store.upsert_ohlcv_series(bars)
    except StorageError as e:
        logger.error("[ohlc] Failed to persist %s bars for %s: %s", result.provider, symbol, e)
        return SymbolOutcome(
            symbol=symbol,
            exchange=exchange,
            status=SymbolStatus.PERSIST_FAILED,
            provider=result.provider,
            error=str(e),
        )

    logger.info("[ohlc] Stored %d %s bars for %s from %s", written, interval, symbol, result.provider)
    return SymbolOutcome(
        symbol=symbol,
        exchange=exchange,
        status=SymbolStatus.COLLECTED,
        provider=result.provider,
        bars=written,
    )


async def collect_watch_list_ohlc(
    canonical: CanonicalWatchListStore,
    ohlcv_store: SqliteOhlcvStore,
    providers: Sequence[OhlcProvider] | None = None,
    interval: Any = DEFAULT_INTERVAL,
    lookback: Any = DEFAULT_LOOKBACK,
    request_delay_ms: int = 0,
    max_concurrency: int = 1,
    sleep: Sleep = asyncio.sleep,
) -> CollectionReport:
    """Collect bars for every active canonical entry.

    Parameters
    ----------
    providers : Sequence[OhlcProvider] | None
        Fallback chain; the registry default when None.
    request_delay_ms : int
        Pause between provider attempts and between entries. 0 disables.
    max_concurrency : int
        Entries processed at once. Providers for one entry are always tried
        one after another.
    """
    interval = normalize_interval(interval)
    lookback = normalize_lookback(lookback)
    chain = list(providers) if providers is not None else get_ohlc_providers()
    for provider in chain:
        provider.ensure_configured()

    report = CollectionReport(interval=interval, lookback=lookback, started_at=utc_now())
    entries = await canonical.list_active()
    report.entries_total = len(entries)
    logger.info(
        "[ohlc] Collecting %s bars (lookback %d) for %d active entries",
        interval, lookback, len(entries),
    )

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def run(index: int, entry: WatchListEntry) -> SymbolOutcome:
        async with semaphore:
            outcome = await _collect_entry(
                entry, chain, ohlcv_store, interval, lookback, request_delay_ms, sleep
            )
            if request_delay_ms > 0 and index < len(entries) - 1:
                await sleep(request_delay_ms / 1000)
            return outcome

    if max_concurrency <= 1:
        outcomes = [await run(i, entry) for i, entry in enumerate(entries)]
    else:
        outcomes = list(await asyncio.gather(*(run(i, e) for i, e in enumerate(entries))))

    report.outcomes = outcomes
    report.finished_at = utc_now()
    logger.info(
        "[ohlc] Collection complete: %d collected, %d without data, %d persist failures, %d bars",
        report.count(SymbolStatus.COLLECTED),
        report.count(SymbolStatus.NO_DATA),
        report.count(SymbolStatus.PERSIST_FAILED),
        report.bars_upserted,
    )
    return report


async def collect_daily_ohlc(
    canonical: CanonicalWatchListStore,
    ohlcv_store: SqliteOhlcvStore,
    **kwargs: Any,
) -> CollectionReport:
    interval, lookback = DAILY_PRESET
    return await collect_watch_list_ohlc(
        canonical, ohlcv_store, interval=interval, lookback=lookback, **kwargs
    )


async def collect_hourly_ohlc(
    canonical: CanonicalWatchListStore,
    ohlcv_store: SqliteOhlcvStore,
    **kwargs: Any,
) -> CollectionReport:
    interval, lookback = HOURLY_PRESET
    return await collect_watch_list_ohlc(
        canonical, ohlcv_store, interval=interval, lookback=lookback, **kwargs
    )
