"""External market data providers.

This module centralizes all external market data fetching:
- PriceResolver: Single entry point, runs the provider fallback chains
- CoinGeckoClient: Batched crypto prices with 24h change
- CoinCapClient: Per-asset fallback crypto prices
- YahooChartClient: Fund/equity quotes through proxy endpoints
- ExchangeRateClient: Base -> quote currency rate with a fixed fallback

Usage:
    from portfolio_tracker.services.market_data import PriceResolver

    resolver = PriceResolver()
    crypto = await resolver.resolve_crypto(["bitcoin", "usd-coin"])
    equities = await resolver.resolve_equities(["IWDA.AS", "TSLA"])
"""

from .coincap_client import COINGECKO_TO_COINCAP, CoinCapAPIError, CoinCapClient
from .coingecko_client import CoinGeckoAPIError, CoinGeckoClient
from .exchange_rate_client import ExchangeRateAPIError, ExchangeRateClient
from .price_resolver import PriceResolver
from .yahoo_chart_client import (
    CHART_PROXIES,
    ChartProxy,
    YahooChartClient,
    YahooChartError,
    parse_chart_payload,
)

__all__ = [
    "CHART_PROXIES",
    "COINGECKO_TO_COINCAP",
    "ChartProxy",
    "CoinCapAPIError",
    "CoinCapClient",
    "CoinGeckoAPIError",
    "CoinGeckoClient",
    "ExchangeRateAPIError",
    "ExchangeRateClient",
    "PriceResolver",
    "YahooChartClient",
    "YahooChartError",
    "parse_chart_payload",
]
