"""Provider registry: builds the ordered fallback chain."""

from __future__ import annotations

import httpx

from watchlist_sentinel.core.config import ProvidersConfig
from watchlist_sentinel.core.exceptions import ConfigError
from watchlist_sentinel.market_data.alpha_vantage import AlphaVantageProvider
from watchlist_sentinel.market_data.finnhub import FinnhubProvider
from watchlist_sentinel.market_data.provider import HttpOhlcProvider, OhlcProvider
from watchlist_sentinel.market_data.twelve_data import TwelveDataProvider

PROVIDER_CLASSES: dict[str, type[HttpOhlcProvider]] = {
    TwelveDataProvider.name: TwelveDataProvider,
    FinnhubProvider.name: FinnhubProvider,
    AlphaVantageProvider.name: AlphaVantageProvider,
}


def get_ohlc_providers(
    config: ProvidersConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[OhlcProvider]:
    """Return the providers in fallback order.

    The default order is Twelve Data, then Finnhub, then Alpha Vantage.
    ``config.order`` may drop or reorder providers but never adds new ones.
    """
    config = config or ProvidersConfig()
    providers: list[OhlcProvider] = []
    for name in config.order:
        cls = PROVIDER_CLASSES.get(name)
        if cls is None:
            raise ConfigError(
                f"Unknown market data provider: {name}",
                context={"field": "providers.order", "value": name},
            )
        providers.append(
            cls(timeout=config.request_timeout, rate_limit=config.rate_limit, client=client)
        )
    return providers
