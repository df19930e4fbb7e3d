"""Click-based CLI for watchlist-sentinel.

Thin wrapper around library modules. Every command opens the stores it
needs, delegates to the watchlist, market_data, or resolver packages, and
renders the result.
"""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code.

    Library errors are reported on the console and exit with status 1.
    """
    from watchlist_sentinel.core import WatchlistSentinelError

    try:
        return asyncio.run(coro)
    except WatchlistSentinelError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        if e.context:
            console.print(f"[dim]{e.context}[/dim]")
        sys.exit(1)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from watchlist_sentinel.core import load_config
        from watchlist_sentinel.core.logging import setup_logging

        config = load_config(config_path=ctx.obj.get("config_path"))
        setup_logging("DEBUG" if ctx.obj.get("verbose") else config.logging.level)
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _legacy_store(config):
    from watchlist_sentinel.watchlist import LegacyWatchListStore

    return LegacyWatchListStore(config.storage.legacy_path)


def _canonical_store(config):
    from watchlist_sentinel.watchlist import CanonicalWatchListStore

    return CanonicalWatchListStore(config.storage.canonical_path)


def _ohlcv_store(config):
    from watchlist_sentinel.market_data import SqliteOhlcvStore

    return SqliteOhlcvStore(config.storage.ohlcv_path)


def _entries_table(title: str, entries) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Symbol", style="bold")
    table.add_column("Exchange")
    table.add_column("Active")
    table.add_column("Updated")
    for e in entries:
        table.add_row(
            str(e.id),
            e.symbol,
            e.display_exchange,
            "[green]yes[/green]" if e.active else "[dim]no[/dim]",
            e.updated_at.isoformat() if e.updated_at else "",
        )
    return table


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="WATCHLIST_SENTINEL_CONFIG",
    default=None,
    help="Path to watchlist-sentinel.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="watchlist-sentinel")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Watchlist Sentinel: dual-store watch list sync and OHLCV collection."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# init-db
# ---------------------------------------------------------------------------


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create or migrate the legacy, canonical, and OHLCV databases."""

    async def _run():
        config = _load_config(ctx)
        for store in (_legacy_store(config), _canonical_store(config), _ohlcv_store(config)):
            async with store:
                pass
        console.print("[green]✓[/green] Databases ready:")
        console.print(f"  legacy:    {config.storage.legacy_path}")
        console.print(f"  canonical: {config.storage.canonical_path}")
        console.print(f"  ohlcv:     {config.storage.ohlcv_path}")

    _run_async(_run())


# ---------------------------------------------------------------------------
# watchlist
# ---------------------------------------------------------------------------


@cli.group()
def watchlist() -> None:
    """Inspect, edit, and reconcile the watch lists."""


@watchlist.command("sync")
@click.pass_context
def watchlist_sync(ctx: click.Context) -> None:
    """Reconcile the legacy and canonical watch lists once."""

    async def _run():
        from watchlist_sentinel.watchlist import sync_watch_lists

        config = _load_config(ctx)
        async with _legacy_store(config) as legacy, _canonical_store(config) as canonical:
            report = await sync_watch_lists(legacy, canonical)

        for action in report.applied:
            console.print(f"  [cyan]→[/cyan] {action.describe()}")
        for failure in report.failed:
            console.print(f"  [red]✗[/red] {failure.action.describe()}: {failure.error}")
        if report.in_sync:
            console.print(f"[green]✓[/green] {report.keys_examined} keys already in sync")
        else:
            console.print(
                f"[green]✓[/green] Examined {report.keys_examined} keys: "
                f"{len(report.applied)} applied"
                + (f", [red]{len(report.failed)} failed[/red]" if report.failed else "")
            )

    _run_async(_run())


@watchlist.command("list")
@click.option(
    "--store",
    type=click.Choice(["legacy", "canonical"], case_sensitive=False),
    default="canonical",
    help="Which store to read.",
)
@click.option("--active-only", is_flag=True, default=False, help="Only active entries.")
@click.pass_context
def watchlist_list(ctx: click.Context, store: str, active_only: bool) -> None:
    """List watch entries."""

    async def _run():
        config = _load_config(ctx)
        if store == "legacy":
            async with _legacy_store(config) as legacy:
                entries = await legacy.list()
            if active_only:
                entries = [e for e in entries if e.active]
        else:
            async with _canonical_store(config) as canonical:
                entries = await (canonical.list_active() if active_only else canonical.list())

        if not entries:
            console.print("[yellow]Watch list is empty.[/yellow]")
            return
        console.print(_entries_table(f"Watch list ({store})", entries))

    _run_async(_run())


@watchlist.command("add")
@click.argument("symbol")
@click.option("--exchange", "-e", default=None, help="Exchange code; omit for GLOBAL.")
@click.option("--inactive", is_flag=True, default=False, help="Create the entry inactive.")
@click.pass_context
def watchlist_add(ctx: click.Context, symbol: str, exchange: str | None, inactive: bool) -> None:
    """Add SYMBOL to the canonical watch list."""
    from watchlist_sentinel.core import require_symbol

    try:
        symbol = require_symbol(symbol)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="SYMBOL") from e

    async def _run():
        config = _load_config(ctx)
        async with _canonical_store(config) as canonical:
            entry, history = await canonical.create(symbol, exchange, active=not inactive)
        console.print(
            f"[green]✓[/green] Added {entry.symbol} ({entry.display_exchange}) "
            f"id={entry.id} active={entry.active}"
        )
        if history is not None:
            console.print(f"  history #{history.id} opened at {history.active_from.isoformat()}")

    _run_async(_run())


@watchlist.command("set-active")
@click.argument("entry_id", type=int)
@click.option("--active/--inactive", default=True, help="Target state.")
@click.pass_context
def watchlist_set_active(ctx: click.Context, entry_id: int, active: bool) -> None:
    """Activate or deactivate canonical entry ENTRY_ID."""

    async def _run():
        config = _load_config(ctx)
        async with _canonical_store(config) as canonical:
            entry, history = await canonical.set_active_status(entry_id, active)
        if history is None:
            console.print(f"[yellow]{entry.symbol} already active={entry.active}; no change.[/yellow]")
            return
        verb = "opened" if history.is_open else "closed"
        console.print(
            f"[green]✓[/green] {entry.symbol} ({entry.display_exchange}) "
            f"active={entry.active}, history #{history.id} {verb}"
        )

    _run_async(_run())


@watchlist.command("history")
@click.argument("entry_id", type=int)
@click.pass_context
def watchlist_history(ctx: click.Context, entry_id: int) -> None:
    """Show the activity history of canonical entry ENTRY_ID."""

    async def _run():
        config = _load_config(ctx)
        async with _canonical_store(config) as canonical:
            entry = await canonical.get_by_id(entry_id)
            if entry is None:
                raise click.ClickException(f"No canonical entry with id {entry_id}")
            rows = await canonical.get_history(entry_id)

        table = Table(title=f"History of {entry.symbol} ({entry.display_exchange})")
        table.add_column("ID", justify="right")
        table.add_column("Active from")
        table.add_column("Inactive at")
        for row in rows:
            table.add_row(
                str(row.id),
                row.active_from.isoformat(),
                row.inactive_at.isoformat() if row.inactive_at else "[green]open[/green]",
            )
        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# ohlc
# ---------------------------------------------------------------------------


@cli.group()
def ohlc() -> None:
    """Collect OHLCV bars for active watch entries."""


def _collect(ctx: click.Context, interval: str | None, lookback: int | None) -> None:
    async def _run():
        import httpx

        from watchlist_sentinel.market_data import collect_watch_list_ohlc, get_ohlc_providers

        config = _load_config(ctx)
        async with (
            httpx.AsyncClient() as client,
            _canonical_store(config) as canonical,
            _ohlcv_store(config) as ohlcv_store,
        ):
            report = await collect_watch_list_ohlc(
                canonical,
                ohlcv_store,
                providers=get_ohlc_providers(config.providers, client=client),
                interval=interval or config.collection.default_interval,
                lookback=lookback or config.collection.default_lookback,
                request_delay_ms=config.collection.request_delay_ms,
                max_concurrency=config.collection.max_concurrency,
            )
        _print_collection(report)

    _run_async(_run())


def _print_collection(report) -> None:
    from watchlist_sentinel.market_data import SymbolStatus

    table = Table(title=f"OHLC collection ({report.interval}, lookback {report.lookback})")
    table.add_column("Symbol", style="bold")
    table.add_column("Exchange")
    table.add_column("Status")
    table.add_column("Provider")
    table.add_column("Bars", justify="right")
    styles = {
        SymbolStatus.COLLECTED: "green",
        SymbolStatus.NO_DATA: "yellow",
        SymbolStatus.PERSIST_FAILED: "red",
        SymbolStatus.SKIPPED: "dim",
    }
    for o in report.outcomes:
        style = styles[o.status]
        table.add_row(
            o.symbol,
            o.exchange or "GLOBAL",
            f"[{style}]{o.status}[/{style}]",
            o.provider or ", ".join(o.attempts),
            str(o.bars),
        )
    console.print(table)
    console.print(
        f"[green]✓[/green] {report.count(SymbolStatus.COLLECTED)}/{report.entries_total} "
        f"entries collected, {report.bars_upserted} bars upserted"
    )


@ohlc.command("collect")
@click.option("--interval", "-i", default=None, help="Bar interval (1d, 1h, 1m, ...).")
@click.option("--lookback", "-n", type=int, default=None, help="Number of bars to request.")
@click.pass_context
def ohlc_collect(ctx: click.Context, interval: str | None, lookback: int | None) -> None:
    """Collect bars with the configured or given interval and lookback."""
    _collect(ctx, interval, lookback)


@ohlc.command("collect-daily")
@click.pass_context
def ohlc_collect_daily(ctx: click.Context) -> None:
    """Collect the last 7 daily bars."""
    from watchlist_sentinel.market_data.collector import DAILY_PRESET

    _collect(ctx, *DAILY_PRESET)


@ohlc.command("collect-hourly")
@click.pass_context
def ohlc_collect_hourly(ctx: click.Context) -> None:
    """Collect the last 168 hourly bars."""
    from watchlist_sentinel.market_data.collector import HOURLY_PRESET

    _collect(ctx, *HOURLY_PRESET)


@ohlc.command("bars")
@click.argument("symbol")
@click.option("--exchange", "-e", default=None, help="Exchange code; omit for GLOBAL.")
@click.option("--interval", "-i", default="1d", show_default=True, help="Bar interval.")
@click.option(
    "--limit",
    "-n",
    type=click.IntRange(min=1),
    default=20,
    show_default=True,
    help="Most recent N bars.",
)
@click.pass_context
def ohlc_bars(
    ctx: click.Context, symbol: str, exchange: str | None, interval: str, limit: int
) -> None:
    """Show stored bars for SYMBOL."""

    async def _run():
        config = _load_config(ctx)
        async with _ohlcv_store(config) as ohlcv_store:
            bars = await ohlcv_store.get_bars(symbol, exchange, interval)

        if not bars:
            console.print(f"[yellow]No {interval} bars stored for {symbol}.[/yellow]")
            return
        table = Table(title=f"{symbol} ({exchange or 'GLOBAL'}) {interval}")
        table.add_column("Time")
        for col in ("Open", "High", "Low", "Close", "Volume"):
            table.add_column(col, justify="right")
        table.add_column("Provider")
        for b in bars[-limit:]:
            table.add_row(
                b.time.strftime("%Y-%m-%d %H:%M"),
                f"{b.open:.4f}",
                f"{b.high:.4f}",
                f"{b.low:.4f}",
                f"{b.close:.4f}",
                str(b.volume),
                b.provider,
            )
        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbol")
@click.option("--exchange-hint", "-e", default=None, help="Exchange the caller believes in.")
@click.option("--name", default=None, help="Company or asset name.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def resolve(
    ctx: click.Context,
    symbol: str,
    exchange_hint: str | None,
    name: str | None,
    output_format: str,
) -> None:
    """Resolve SYMBOL to a canonical (symbol, exchange) pair."""
    from watchlist_sentinel.core import AssetCandidate, WatchlistSentinelError
    from watchlist_sentinel.resolver import AssetResolver, default_tables

    try:
        config = _load_config(ctx)
    except WatchlistSentinelError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        sys.exit(1)

    resolver = AssetResolver(
        default_tables(config.resolver.seed_path, config.resolver.default_exchange)
    )
    result = resolver.resolve(
        AssetCandidate(symbol=symbol, exchange_hint=exchange_hint, name=name)
    )

    if output_format == "json":
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2, default=str))
        return

    table = Table(title=f"Resolution of {symbol}")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Symbol", result.symbol)
    table.add_row("Exchange", result.exchange_id)
    table.add_row("Confidence", str(result.confidence))
    table.add_row("Method", str(result.method))
    for key, value in sorted(result.meta.items()):
        table.add_row(f"meta.{key}", "" if value is None else str(value))
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
