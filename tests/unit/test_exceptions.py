"""Tests for watchlist_sentinel.core.exceptions."""

import pytest

from watchlist_sentinel.core.exceptions import (
    ConfigError,
    DataIntegrityError,
    ProviderError,
    RateLimitError,
    StorageError,
    UnsupportedIntervalError,
    WatchlistSentinelError,
)


class TestExceptionHierarchy:
    """Verify the exception class hierarchy."""

    def test_config_is_subclass(self):
        assert issubclass(ConfigError, WatchlistSentinelError)

    def test_rate_limit_is_provider_error(self):
        assert issubclass(RateLimitError, ProviderError)
        assert issubclass(RateLimitError, WatchlistSentinelError)

    def test_unsupported_interval_is_provider_error(self):
        assert issubclass(UnsupportedIntervalError, ProviderError)

    def test_storage_is_subclass(self):
        assert issubclass(StorageError, WatchlistSentinelError)

    def test_integrity_is_not_a_storage_error(self):
        # Batch jobs swallow StorageError per key; integrity violations must escape.
        assert not issubclass(DataIntegrityError, StorageError)
        assert issubclass(DataIntegrityError, WatchlistSentinelError)

    def test_config_is_not_a_provider_error(self):
        assert not issubclass(ConfigError, ProviderError)


class TestExceptionContext:
    """Verify context dict behavior."""

    def test_context_preserved(self):
        exc = ProviderError(
            "Finnhub HTTP 500",
            context={"provider": "finnhub", "symbol": "AAPL", "status_code": 500},
        )
        assert exc.context["provider"] == "finnhub"
        assert exc.context["status_code"] == 500

    def test_default_context_is_empty_dict(self):
        exc = WatchlistSentinelError("test error")
        assert exc.context == {}

    def test_str_returns_message(self):
        exc = ConfigError("invalid field")
        assert str(exc) == "invalid field"

    def test_context_none_becomes_empty_dict(self):
        exc = StorageError("db fail", context=None)
        assert exc.context == {}

    def test_can_be_caught_as_parent(self):
        with pytest.raises(ProviderError):
            raise RateLimitError("too fast", context={"retry_after": 10})
