"""Custom exception hierarchy for watchlist-sentinel."""

from typing import Any


class WatchlistSentinelError(Exception):
    """Base exception for all watchlist-sentinel errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(WatchlistSentinelError):
    """Invalid or missing configuration.

    Raised by load_config() during startup and by provider API key lookup
    before any request is sent. Should be treated as fatal.

    Context keys:
        field: str, the config field or environment variable that failed
        value: Any, the invalid value (redacted for secrets)
    """


class ProviderError(WatchlistSentinelError):
    """An upstream market-data provider failed for one request.

    Policy: log and fall back to the next provider. Never aborts a batch.

    Context keys:
        provider: str, provider name ("twelve-data", "finnhub", ...)
        symbol: str, the symbol being fetched
        status_code: int | None, HTTP status code if applicable
    """


class RateLimitError(ProviderError):
    """Provider reported throttling (HTTP 429 or an in-payload notice).

    Policy: same as ProviderError. The next scheduled run retries.

    Context keys:
        retry_after: int | None, seconds to wait, when the provider says
    """


class UnsupportedIntervalError(ProviderError):
    """The provider has no native equivalent for the requested interval.

    Context keys:
        interval: str, the generic interval that was requested
    """


class StorageError(WatchlistSentinelError):
    """Database operation failed.

    Policy: raise from the store. Batch jobs log it and continue with the
    next symbol or key.

    Context keys:
        operation: str, "insert", "query", "upsert", "migrate", etc.
        table: str, the table involved
    """


class DataIntegrityError(WatchlistSentinelError):
    """A stored invariant does not hold (missing row, no open history).

    Policy: raise immediately. Propagates out of batch jobs.

    Context keys:
        table: str, the table involved
        id: int, the row that violated the invariant
    """
