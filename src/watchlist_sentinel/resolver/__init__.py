"""Asset resolver: free-text hints to canonical (symbol, exchange) pairs."""

from watchlist_sentinel.resolver.resolver import (
    UNMAPPED,
    AssetResolver,
    gather_alias_candidates,
    resolve_watch_list_candidates,
)
from watchlist_sentinel.resolver.tables import (
    DEFAULT_EXCHANGE,
    AliasIndex,
    AmbiguousSymbol,
    CatalogAsset,
    ResolverTables,
    default_tables,
    load_seed_entries,
    normalize_key,
)

__all__ = [
    "AssetResolver",
    "AliasIndex",
    "AmbiguousSymbol",
    "CatalogAsset",
    "ResolverTables",
    "DEFAULT_EXCHANGE",
    "UNMAPPED",
    "default_tables",
    "gather_alias_candidates",
    "load_seed_entries",
    "normalize_key",
    "resolve_watch_list_candidates",
]
