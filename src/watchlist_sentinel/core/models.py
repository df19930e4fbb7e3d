"""Watch list and resolver models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Type Aliases ---

Symbol = str
ExchangeCode = str
WatchKey = tuple[str, str]

# --- Enumerations ---


class StoreName(StrEnum):
    """The two independently writable watch-list stores."""

    LEGACY = "legacy"
    CANONICAL = "canonical"


class Confidence(StrEnum):
    """Resolver's self-reported certainty in a resolution."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ResolutionMethod(StrEnum):
    """Which resolver stage produced a resolution."""

    CATALOG = "catalog"
    AMBIGUOUS_FALLBACK = "ambiguous-fallback"
    FOREX = "forex"
    CRYPTO = "crypto"
    FALLBACK = "fallback"


# --- Key helpers ---


def normalize_exchange(value: Any) -> str | None:
    """Trim an exchange code; blank and None both become None."""
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def require_symbol(value: Any) -> str:
    """Trim a symbol, rejecting blanks."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("symbol is required")
    return value.strip()


def watch_key(symbol: Any, exchange: Any) -> WatchKey:
    """Build the cross-store identity of a watch entry.

    ``None`` and ``""`` exchanges produce the same key.
    """
    return (str(symbol or "").strip(), normalize_exchange(exchange) or "")


# --- Watch List Models ---


class WatchListEntry(BaseModel):
    """One tracked (symbol, exchange) pair in either store.

    ``id`` is store-local and never compared across stores.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    symbol: Symbol
    exchange: ExchangeCode | None = None
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("symbol must not be blank")
        return v.strip()

    @field_validator("exchange", mode="before")
    @classmethod
    def blank_exchange_is_none(cls, v: Any) -> str | None:
        return normalize_exchange(v)

    @property
    def key(self) -> WatchKey:
        return watch_key(self.symbol, self.exchange)

    @property
    def display_exchange(self) -> str:
        return self.exchange or "GLOBAL"


class WatchHistoryEntry(BaseModel):
    """An active interval of a canonical watch entry.

    ``inactive_at`` of None means the interval is still open.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    watch_list_id: int
    active_from: datetime
    inactive_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.inactive_at is None

    @model_validator(mode="after")
    def closes_after_opening(self) -> WatchHistoryEntry:
        if self.inactive_at is not None and self.inactive_at < self.active_from:
            raise ValueError(
                f"inactive_at ({self.inactive_at}) must not precede "
                f"active_from ({self.active_from})"
            )
        return self


# --- Resolver Models ---


class AssetCandidate(BaseModel):
    """Free-text asset description supplied by a user or an assistant."""

    model_config = ConfigDict(frozen=True)

    symbol: str | None = None
    ticker: str | None = None
    name: str | None = None
    exchange_hint: str | None = None
    economic_anchor: str | None = None


class ResolvedAsset(BaseModel):
    """Canonical (symbol, exchange) produced by the resolver."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    exchange_id: ExchangeCode
    confidence: Confidence
    method: ResolutionMethod
    meta: dict[str, Any] = {}
