"""CoinCap API client, the per-asset fallback for crypto prices.

CoinCap only reports a USD price per asset, so quotes from here never carry
a 24h change.
"""

import logging
from decimal import Decimal, InvalidOperation

import httpx

from portfolio_tracker.config import settings
from portfolio_tracker.schemas.price import PriceQuote
from portfolio_tracker.services.shared.http_client import AsyncHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)

# CoinGecko id to CoinCap id, for assets where the two differ
COINGECKO_TO_COINCAP: dict[str, str] = {
    "bitcoin": "bitcoin",
    "ethereum": "ethereum",
    "aave": "aave",
    "crypto-com-chain": "crypto-com-coin",
    "usd-coin": "usd-coin",
    "tether": "tether",
    "gho": "gho",
    "binancecoin": "binance-coin",
    "matic-network": "polygon",
    "avalanche-2": "avalanche",
    "ripple": "xrp",
}


class CoinCapAPIError(HTTPClientError):
    """Exception raised for CoinCap API errors."""


class CoinCapClient(AsyncHTTPClient):
    """Client for single-asset USD prices from CoinCap.

    Usage:
        async with CoinCapClient() as client:
            quote = await client.get_price("bitcoin")
    """

    error_class = CoinCapAPIError

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url=base_url or settings.coincap_api_url,
            timeout=timeout or settings.http_timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @staticmethod
    def to_coincap_id(coin_id: str) -> str:
        """Translate a CoinGecko id, falling back to the id itself."""
        return COINGECKO_TO_COINCAP.get(coin_id, coin_id)

    async def get_price(self, coin_id: str) -> PriceQuote:
        """Get the current USD price for one asset.

        Args:
            coin_id: CoinGecko id of the asset; the returned quote keeps this id

        Raises:
            CoinCapAPIError: If the request fails or the body has no usable price
        """
        coincap_id = self.to_coincap_id(coin_id)
        result = await self.get_json(f"/assets/{coincap_id}")

        try:
            price = Decimal(str(result["data"]["priceUsd"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise CoinCapAPIError(f"No price in CoinCap response for {coincap_id}") from e

        logger.debug(f"Fetched CoinCap price for {coin_id} ({coincap_id}): {price}")
        return PriceQuote(identifier=coin_id, price=price, currency="USD")
