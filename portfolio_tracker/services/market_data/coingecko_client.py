"""CoinGecko API client for current cryptocurrency prices.

Primary crypto provider: one batched call returns price and 24h change for
every requested id.
"""

import logging
from decimal import Decimal

import httpx

from portfolio_tracker.config import settings
from portfolio_tracker.schemas.price import PriceQuote
from portfolio_tracker.services.shared.http_client import AsyncHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)


class CoinGeckoAPIError(HTTPClientError):
    """Exception raised for CoinGecko API errors."""


class CoinGeckoClient(AsyncHTTPClient):
    """Client for fetching cryptocurrency prices from CoinGecko.

    Usage:
        async with CoinGeckoClient() as client:
            quotes = await client.get_simple_prices(["bitcoin", "ethereum"])
    """

    error_class = CoinGeckoAPIError

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize CoinGecko client.

        Args:
            api_key: Optional demo API key for higher rate limits
            base_url: API root, defaults to settings.coingecko_api_url
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else settings.coingecko_api_key
        super().__init__(
            base_url=base_url or settings.coingecko_api_url,
            timeout=timeout or settings.http_timeout_seconds,
            headers=self._get_headers(),
            transport=transport,
        )

    def _get_headers(self) -> dict[str, str]:
        """Get request headers including API key if available."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def get_simple_prices(
        self, ids: list[str], vs_currency: str = "usd"
    ) -> dict[str, PriceQuote]:
        """Get current prices and 24h changes for multiple coins in one call.

        Args:
            ids: CoinGecko coin ids (e.g., ["bitcoin", "usd-coin"])
            vs_currency: Quote currency (default: "usd")

        Returns:
            Dict mapping id to quote. Ids the API does not recognize are absent.

        Raises:
            CoinGeckoAPIError: If the request fails or returns a non-success status
        """
        if not ids:
            return {}

        params = {
            "ids": ",".join(ids),
            "vs_currencies": vs_currency,
            "include_24hr_change": "true",
        }
        result = await self.get_json("/simple/price", params=params)
        if not isinstance(result, dict):
            raise CoinGeckoAPIError("Unexpected response shape from /simple/price")

        change_key = f"{vs_currency}_24h_change"
        quotes: dict[str, PriceQuote] = {}
        for coin_id, data in result.items():
            if coin_id not in ids or not isinstance(data, dict) or data.get(vs_currency) is None:
                continue
            change = data.get(change_key)
            quotes[coin_id] = PriceQuote(
                identifier=coin_id,
                price=Decimal(str(data[vs_currency])),
                currency=vs_currency.upper(),
                change_24h=Decimal(str(change)) if change is not None else None,
            )

        logger.info(f"Fetched CoinGecko prices for {len(quotes)}/{len(ids)} ids")
        return quotes
