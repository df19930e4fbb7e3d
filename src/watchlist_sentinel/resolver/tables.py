"""Immutable lookup tables for the asset resolver.

The bundled catalog covers the assets the watch list is seeded with. An
optional SQL seed file adds ``(symbol, exchange)`` rows on top of it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE = "GLOBAL"

_SEED_ROW = re.compile(r"\('([A-Z0-9.:_-]+)',\s*'([A-Z0-9.:_-]*)'")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def normalize_key(value: object) -> str:
    """Uppercase and strip everything but A-Z and 0-9."""
    if value is None or value == "":
        return ""
    return _NON_ALNUM.sub("", str(value).strip().upper())


class CatalogAsset(BaseModel):
    """A known asset and the free-text names that point to it."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    exchange_id: str
    aliases: tuple[str, ...] = ()


class AmbiguousSymbol(BaseModel):
    """A symbol listed on several venues, with the venue used by default."""

    model_config = ConfigDict(frozen=True)

    exchanges: tuple[str, ...]
    preferred: str


# Fiat pairs are left to the forex heuristic.
STATIC_ASSETS: tuple[CatalogAsset, ...] = (
    CatalogAsset(symbol="AAPL", exchange_id="NASDAQ", aliases=("APPLE", "APPLE INC", "APPLE INC.")),
    CatalogAsset(symbol="MSFT", exchange_id="NASDAQ", aliases=("MICROSOFT", "MICROSOFT CORP", "MICROSOFT CORPORATION")),
    CatalogAsset(symbol="GOOGL", exchange_id="NASDAQ", aliases=("ALPHABET", "ALPHABET INC", "GOOGLE")),
    CatalogAsset(symbol="AMZN", exchange_id="NASDAQ", aliases=("AMAZON", "AMAZON.COM", "AMAZON COM")),
    CatalogAsset(symbol="NVDA", exchange_id="NASDAQ", aliases=("NVIDIA", "NVIDIA CORP", "NVIDIA CORPORATION")),
    CatalogAsset(symbol="META", exchange_id="NASDAQ", aliases=("FACEBOOK", "META PLATFORMS", "META PLATFORMS INC")),
    CatalogAsset(symbol="TSLA", exchange_id="NASDAQ", aliases=("TESLA", "TESLA INC")),
    CatalogAsset(symbol="JPM", exchange_id="NYSE", aliases=("JPMORGAN", "JP MORGAN", "JPMORGAN CHASE")),
    CatalogAsset(symbol="SPY", exchange_id="NYSEARCA", aliases=("S&P 500 ETF", "SPDR S&P 500", "SP500 ETF")),
    CatalogAsset(symbol="GLD", exchange_id="NYSEARCA", aliases=("GOLD ETF", "SPDR GOLD SHARES")),
    CatalogAsset(symbol="BTCUSD", exchange_id="BINANCE", aliases=("BTC-USD", "BTC/USD", "BITCOIN")),
    CatalogAsset(symbol="ETHUSD", exchange_id="BINANCE", aliases=("ETH-USD", "ETH/USD", "ETHEREUM")),
    CatalogAsset(symbol="SOLUSD", exchange_id="BINANCE", aliases=("SOL-USD", "SOL/USD", "SOLANA")),
    CatalogAsset(symbol="US10Y", exchange_id="UST", aliases=("10Y", "UST 10Y", "US TREASURY 10Y")),
    CatalogAsset(symbol="CL", exchange_id="NYMEX", aliases=("WTI", "WTI CRUDE", "CRUDE OIL")),
)

AMBIGUOUS_SYMBOLS: dict[str, AmbiguousSymbol] = {
    "BABA": AmbiguousSymbol(exchanges=("NYSE", "HKEX"), preferred="NYSE"),
    "RIO": AmbiguousSymbol(exchanges=("NYSE", "LSE"), preferred="NYSE"),
}

FOREX_CURRENCIES = frozenset({"USD", "EUR", "JPY", "GBP", "AUD", "NZD", "CAD", "CHF", "CNY"})
CRYPTO_BASES = frozenset({"BTC", "ETH", "SOL", "ADA", "XRP", "DOGE"})
CRYPTO_QUOTES = frozenset({"USD", "USDT"})

EXCHANGE_REMAP: dict[str, str] = {
    "NASDAQGS": "NASDAQ",
    "NASDAQ GLOBAL SELECT": "NASDAQ",
    "NYSE ARCA": "NYSEARCA",
    "NEW YORK STOCK EXCHANGE": "NYSE",
}


class ResolverTables(BaseModel):
    """Everything the resolver consults, frozen at construction."""

    model_config = ConfigDict(frozen=True)

    catalog: tuple[CatalogAsset, ...] = STATIC_ASSETS
    seed_assets: tuple[CatalogAsset, ...] = ()
    ambiguous: dict[str, AmbiguousSymbol] = AMBIGUOUS_SYMBOLS
    forex_currencies: frozenset[str] = FOREX_CURRENCIES
    crypto_bases: frozenset[str] = CRYPTO_BASES
    crypto_quotes: frozenset[str] = CRYPTO_QUOTES
    exchange_remap: dict[str, str] = EXCHANGE_REMAP
    default_exchange: str = DEFAULT_EXCHANGE

    def assets(self) -> tuple[CatalogAsset, ...]:
        """Alias index source order: bundled catalog, then seed rows."""
        return self.catalog + self.seed_assets

    def normalize_exchange_hint(self, value: object) -> str | None:
        if value is None:
            return None
        upper = str(value).strip().upper()
        if not upper:
            return None
        return self.exchange_remap.get(upper, upper)


class AliasIndex:
    """Normalized alias -> asset. The first asset to claim an alias keeps it."""

    def __init__(self, assets: tuple[CatalogAsset, ...]) -> None:
        self._index: dict[str, CatalogAsset] = {}
        for asset in assets:
            for alias in (asset.symbol, *asset.aliases):
                key = normalize_key(alias)
                if key and key not in self._index:
                    self._index[key] = asset

    def lookup(self, alias: object) -> CatalogAsset | None:
        key = normalize_key(alias)
        return self._index.get(key) if key else None

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, alias: object) -> bool:
        return self.lookup(alias) is not None


def load_seed_entries(
    path: str | Path | None, default_exchange: str = DEFAULT_EXCHANGE
) -> tuple[CatalogAsset, ...]:
    """Read ``('SYMBOL', 'EXCHANGE', ...)`` tuples out of a SQL seed file.

    A missing or unreadable file yields no rows. An empty exchange maps to
    ``default_exchange``.
    """
    if path is None:
        return ()
    try:
        contents = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Resolver seed file %s unreadable: %s", path, e)
        return ()

    return tuple(
        CatalogAsset(symbol=symbol, exchange_id=exchange or default_exchange, aliases=(symbol,))
        for symbol, exchange in _SEED_ROW.findall(contents)
    )


def default_tables(
    seed_path: str | Path | None = None, default_exchange: str = DEFAULT_EXCHANGE
) -> ResolverTables:
    """Bundled tables, with seed rows from ``seed_path`` when given."""
    return ResolverTables(
        seed_assets=load_seed_entries(seed_path, default_exchange),
        default_exchange=default_exchange,
    )
