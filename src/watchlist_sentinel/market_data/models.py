"""OHLCV bar model and the typed outcomes of provider calls."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_INTERVAL = "1d"
DEFAULT_LOOKBACK = 30


class OhlcBar(BaseModel):
    """A single OHLCV bar as stored in the time-series table.

    Keyed by ``(symbol, exchange, interval, time)``. ``interval`` is the
    provider-agnostic string the collection ran with ("1d", "1h", ...).
    """

    model_config = ConfigDict(frozen=True)

    provider: str = "unknown"
    symbol: str
    exchange: str | None = None
    interval: str
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    @field_validator("time")
    @classmethod
    def time_is_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("open", "high", "low", "close")
    @classmethod
    def price_is_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"price must be finite, got {v}")
        return v

    @field_validator("volume")
    @classmethod
    def volume_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"volume must be >= 0, got {v}")
        return v


def to_finite(value: object) -> float | None:
    """Parse a provider number; None for missing, non-numeric or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_volume(value: object) -> int:
    """Rounded non-negative volume; anything unusable counts as zero."""
    number = to_finite(value)
    if number is None or number < 0:
        return 0
    return round(number)


# --- Fetch outcomes ---


@dataclass(frozen=True)
class FetchOk:
    """The provider returned at least one bar."""

    provider: str
    bars: list[OhlcBar]


@dataclass(frozen=True)
class FetchEmpty:
    """The provider answered successfully with no bars."""

    provider: str


@dataclass(frozen=True)
class FetchFailed:
    """The provider raised; ``reason`` is the diagnostic message."""

    provider: str
    reason: str


FetchOutcome = FetchOk | FetchEmpty | FetchFailed


@dataclass(frozen=True)
class FetchExhausted:
    """Every provider in the chain failed or came back empty."""

    attempts: list[FetchEmpty | FetchFailed] = field(default_factory=list)


# --- Run report ---


class SymbolStatus(StrEnum):
    COLLECTED = "collected"
    NO_DATA = "no_data"
    PERSIST_FAILED = "persist_failed"
    SKIPPED = "skipped"


class SymbolOutcome(BaseModel):
    """What happened to one watch entry during a collection run."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    exchange: str | None = None
    status: SymbolStatus
    provider: str | None = None
    bars: int = 0
    attempts: list[str] = []
    error: str | None = None


class CollectionReport(BaseModel):
    """Summary of one ``collect_watch_list_ohlc`` run."""

    interval: str
    lookback: int
    entries_total: int = 0
    outcomes: list[SymbolOutcome] = []
    started_at: datetime
    finished_at: datetime | None = None

    def count(self, status: SymbolStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def bars_upserted(self) -> int:
        return sum(o.bars for o in self.outcomes if o.status == SymbolStatus.COLLECTED)
