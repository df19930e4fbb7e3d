"""OHLC provider protocol and the shared HTTP plumbing of the adapters.

Every adapter exposes the same contract:

    await provider.fetch_ohlc(symbol, exchange, interval, lookback) -> list[OhlcBar]

- Generic intervals ("1d", "1h", "1m", ...) are translated to the vendor's
  vocabulary. An interval the vendor cannot serve raises
  ``UnsupportedIntervalError``; it never degrades to an empty list.
- Bars with unparseable timestamps or non-finite prices are dropped one by
  one. The rest are returned sorted by time, oldest first.
- Throttling raises ``RateLimitError``; any other transport, HTTP or payload
  problem raises ``ProviderError``. Retrying and falling back is the
  caller's job.

Adapters never retry. A failed symbol is retried by the next scheduled run.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter

from watchlist_sentinel.core.exceptions import (
    ConfigError,
    ProviderError,
    RateLimitError,
)
from watchlist_sentinel.market_data.models import OhlcBar

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
_PLACEHOLDER_KEYS = frozenset({"demo"})


@runtime_checkable
class OhlcProvider(Protocol):
    """Consumer-facing interface of one upstream market-data vendor."""

    @property
    def name(self) -> str: ...

    def ensure_configured(self) -> None:
        """Raise ConfigError if the provider cannot be called at all."""
        ...

    async def fetch_ohlc(
        self,
        symbol: str,
        exchange: str | None,
        interval: str,
        lookback: int,
    ) -> list[OhlcBar]: ...


def read_api_key(env_var: str, provider: str) -> str:
    """Read a provider API key from the environment at call time.

    Raises ConfigError for a missing, blank, or ``demo`` placeholder key.
    """
    raw = os.environ.get(env_var)
    if raw is None or not raw.strip():
        raise ConfigError(
            f"Missing {provider} API key. Set the {env_var} environment variable.",
            context={"field": env_var, "value": None},
        )
    key = raw.strip()
    if key.lower() in _PLACEHOLDER_KEYS:
        raise ConfigError(
            f"The {provider} demo key is not supported. Provide a production {env_var}.",
            context={"field": env_var, "value": "<placeholder>"},
        )
    return key


class HttpOhlcProvider:
    """Shared request/response handling for the JSON-over-HTTP vendors.

    Parameters
    ----------
    timeout : float
        Per-request timeout in seconds. A timeout is a ProviderError.
    rate_limit : int
        Maximum requests per second sent to this vendor.
    client : httpx.AsyncClient | None
        Shared client to use. A short-lived client is opened per request
        when None.
    """

    name: str = "http"
    api_key_env: str = ""
    api_key_param: str = "apikey"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limit: int = 5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._limiter = AsyncLimiter(max_rate=rate_limit, time_period=1.0)
        self._client = client

    def ensure_configured(self) -> None:
        self.api_key()

    def api_key(self) -> str:
        return read_api_key(self.api_key_env, self.name)

    async def _get_json(self, url: str, params: dict[str, Any], symbol: str) -> Any:
        """GET ``url`` with the API key attached and return the decoded JSON."""
        query = {k: str(v) for k, v in params.items() if v is not None}
        query[self.api_key_param] = self.api_key()
        context = {"provider": self.name, "symbol": symbol}

        await self._limiter.acquire()
        try:
            if self._client is not None:
                response = await self._client.get(url, params=query, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=query)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.name} request timed out after {self._timeout}s",
                context=context,
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"{self.name} request error: {type(e).__name__}",
                context=context,
            ) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"{self.name} throttled the request (HTTP 429)",
                context={
                    **context,
                    "status_code": 429,
                    "retry_after": int(retry_after) if retry_after and retry_after.isdigit() else None,
                },
            )
        if response.status_code != 200:
            raise ProviderError(
                f"{self.name} HTTP {response.status_code}: {response.text[:200]}",
                context={**context, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned a malformed payload",
                context={**context, "status_code": response.status_code},
            ) from e

    def _bar(self, **fields: Any) -> OhlcBar | None:
        """Build one bar, or None when it fails validation."""
        try:
            return OhlcBar(provider=self.name, **fields)
        except ValueError:
            logger.debug("Dropping invalid %s bar: %s", self.name, fields)
            return None
