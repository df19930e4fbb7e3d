"""Deterministic free-text asset resolution.

Stages run in a fixed order and the first hit wins:

1. catalog alias lookup          -> high / catalog
2. ambiguous-symbol table        -> medium / ambiguous-fallback
3. forex pair heuristic          -> medium / forex (venue FOREX)
4. crypto pair / base heuristic  -> medium or low / crypto (venue BINANCE)
5. fallback                      -> low / fallback

``resolve`` never raises; unusable input falls through to stage 5.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from watchlist_sentinel.core.models import (
    AssetCandidate,
    Confidence,
    ResolutionMethod,
    ResolvedAsset,
)
from watchlist_sentinel.core.sqlite import Clock, utc_now
from watchlist_sentinel.resolver.tables import (
    AliasIndex,
    ResolverTables,
    default_tables,
    normalize_key,
)

logger = logging.getLogger(__name__)

UNMAPPED = "UNMAPPED"

_SYMBOL_SEPARATORS = re.compile(r"[:\-/ ]")
_ANCHOR_TICKER = re.compile(r"([A-Z]{1,5})")
_CRYPTO_QUOTE_SUFFIX = re.compile(r"(USD|USDT)$", re.IGNORECASE)


def gather_alias_candidates(candidate: AssetCandidate) -> list[str]:
    """Strings worth looking up in the alias index, most specific first."""
    aliases: list[str] = []
    symbol = candidate.symbol or candidate.ticker or ""
    if symbol:
        aliases.append(symbol)
        parts = symbol.split(":")
        if len(parts) == 2:
            aliases.append(parts[1])
        aliases.append(_SYMBOL_SEPARATORS.sub("", symbol))
        if candidate.exchange_hint:
            aliases.append(f"{candidate.exchange_hint}:{symbol}")
    if candidate.name:
        aliases.append(candidate.name)
    if candidate.economic_anchor:
        match = _ANCHOR_TICKER.search(candidate.economic_anchor)
        if match:
            aliases.append(match.group(1))
    return [a for a in aliases if a]


class AssetResolver:
    """Maps an ``AssetCandidate`` to a canonical (symbol, exchange) pair.

    Parameters
    ----------
    tables : ResolverTables | None
        Lookup tables; the bundled defaults when None.
    clock : Clock | None
        Source of the ``resolved_at`` timestamp in ``meta``.
    """

    def __init__(self, tables: ResolverTables | None = None, clock: Clock | None = None) -> None:
        self._tables = tables or default_tables()
        self._index = AliasIndex(self._tables.assets())
        self._clock = clock or utc_now

    @property
    def tables(self) -> ResolverTables:
        return self._tables

    def resolve(self, candidate: AssetCandidate | Mapping[str, Any] | None) -> ResolvedAsset:
        candidate = self._coerce(candidate)
        hint = self._tables.normalize_exchange_hint(candidate.exchange_hint)
        aliases = gather_alias_candidates(candidate)

        for alias in aliases:
            asset = self._index.lookup(alias)
            if asset is not None:
                return self._finalize(
                    asset.symbol,
                    asset.exchange_id,
                    Confidence.HIGH,
                    ResolutionMethod.CATALOG,
                    matched_alias=alias,
                    provided_exchange_hint=hint,
                )

        primary = normalize_key(
            (aliases[0] if aliases else None) or candidate.symbol or candidate.name
        )
        if primary:
            for stage in (self._ambiguous, self._forex, self._crypto):
                resolved = stage(primary, hint)
                if resolved is not None:
                    return resolved

        return self._finalize(
            primary or UNMAPPED,
            hint or self._tables.default_exchange,
            Confidence.LOW,
            ResolutionMethod.FALLBACK,
            matched_alias=None,
            provided_symbol=candidate.symbol or candidate.name or None,
        )

    def resolve_many(self, candidates: Iterable[Any]) -> list[dict[str, Any]]:
        """Resolve a batch, keeping each input's position."""
        rows = []
        for index, candidate in enumerate(candidates):
            resolution = self.resolve(candidate)
            rows.append(
                {
                    "index": index,
                    "candidate": candidate,
                    "symbol": resolution.symbol,
                    "exchange": resolution.exchange_id,
                    "resolution": resolution,
                }
            )
        return rows

    # --- Stages ---

    def _ambiguous(self, symbol: str, hint: str | None) -> ResolvedAsset | None:
        entry = self._tables.ambiguous.get(symbol)
        if entry is None:
            return None
        exchange = hint if hint in entry.exchanges else entry.preferred
        return self._finalize(
            symbol,
            exchange,
            Confidence.MEDIUM,
            ResolutionMethod.AMBIGUOUS_FALLBACK,
            ambiguous_candidates=list(entry.exchanges),
            provided_exchange_hint=hint,
        )

    def _forex(self, symbol: str, hint: str | None) -> ResolvedAsset | None:
        currencies = self._tables.forex_currencies
        if len(symbol) != 6 or symbol[:3] not in currencies or symbol[3:] not in currencies:
            return None
        return self._finalize(
            symbol,
            "FOREX",
            Confidence.MEDIUM,
            ResolutionMethod.FOREX,
            heuristic="forex-pair",
            provided_exchange_hint=hint,
        )

    def _crypto(self, symbol: str, hint: str | None) -> ResolvedAsset | None:
        if len(symbol) >= 5:
            base = _CRYPTO_QUOTE_SUFFIX.sub("", symbol)
            quote = symbol[len(base):]
            if base in self._tables.crypto_bases and quote in self._tables.crypto_quotes:
                return self._finalize(
                    symbol,
                    "BINANCE",
                    Confidence.MEDIUM,
                    ResolutionMethod.CRYPTO,
                    heuristic="crypto-pair",
                    provided_exchange_hint=hint,
                )
        if symbol in self._tables.crypto_bases:
            return self._finalize(
                f"{symbol}USD",
                "BINANCE",
                Confidence.LOW,
                ResolutionMethod.CRYPTO,
                heuristic="crypto-base",
                provided_exchange_hint=hint,
            )
        return None

    # --- Helpers ---

    def _finalize(
        self,
        symbol: str,
        exchange: str | None,
        confidence: Confidence,
        method: ResolutionMethod,
        **meta: Any,
    ) -> ResolvedAsset:
        return ResolvedAsset(
            symbol=normalize_key(symbol),
            exchange_id=self._tables.normalize_exchange_hint(exchange)
            or self._tables.default_exchange,
            confidence=confidence,
            method=method,
            meta={**meta, "resolved_at": self._clock().isoformat()},
        )

    @staticmethod
    def _coerce(candidate: AssetCandidate | Mapping[str, Any] | None) -> AssetCandidate:
        if isinstance(candidate, AssetCandidate):
            return candidate
        if not isinstance(candidate, Mapping):
            return AssetCandidate()
        fields = {
            k: v if isinstance(v, str) else (str(v) if v is not None else None)
            for k, v in candidate.items()
            if k in AssetCandidate.model_fields
        }
        try:
            return AssetCandidate(**fields)
        except ValidationError:
            logger.debug("Unusable asset candidate %r", candidate)
            return AssetCandidate()


def resolve_watch_list_candidates(
    candidates: Iterable[Any], resolver: AssetResolver | None = None
) -> list[dict[str, Any]]:
    """Resolve a list of candidates into index/candidate/symbol/exchange rows."""
    return (resolver or AssetResolver()).resolve_many(candidates)
