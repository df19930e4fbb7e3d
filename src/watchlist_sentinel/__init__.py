"""watchlist-sentinel: dual-store watch list sync and OHLCV collection."""

__version__ = "0.1.0"
