"""Foundation types, config, and exceptions shared by every package."""

from watchlist_sentinel.core.config import (
    CollectionConfig,
    LoggingConfig,
    ProvidersConfig,
    ResolverConfig,
    SentinelConfig,
    StorageConfig,
    load_config,
)
from watchlist_sentinel.core.exceptions import (
    ConfigError,
    DataIntegrityError,
    ProviderError,
    RateLimitError,
    StorageError,
    UnsupportedIntervalError,
    WatchlistSentinelError,
)
from watchlist_sentinel.core.models import (
    AssetCandidate,
    Confidence,
    ExchangeCode,
    ResolutionMethod,
    ResolvedAsset,
    StoreName,
    Symbol,
    WatchHistoryEntry,
    WatchKey,
    WatchListEntry,
    normalize_exchange,
    require_symbol,
    watch_key,
)

__all__ = [
    # Type aliases
    "Symbol",
    "ExchangeCode",
    "WatchKey",
    # Enums
    "StoreName",
    "Confidence",
    "ResolutionMethod",
    # Watch list models
    "WatchListEntry",
    "WatchHistoryEntry",
    "normalize_exchange",
    "require_symbol",
    "watch_key",
    # Resolver models
    "AssetCandidate",
    "ResolvedAsset",
    # Config
    "SentinelConfig",
    "StorageConfig",
    "ProvidersConfig",
    "CollectionConfig",
    "ResolverConfig",
    "LoggingConfig",
    "load_config",
    # Exceptions
    "WatchlistSentinelError",
    "ConfigError",
    "ProviderError",
    "RateLimitError",
    "UnsupportedIntervalError",
    "StorageError",
    "DataIntegrityError",
]
