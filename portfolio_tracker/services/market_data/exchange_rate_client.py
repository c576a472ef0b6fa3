"""Exchange rate provider for the base -> quote currency conversion."""

import logging
from decimal import Decimal, InvalidOperation

import httpx

from portfolio_tracker.config import settings
from portfolio_tracker.services.shared.http_client import AsyncHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)


class ExchangeRateAPIError(HTTPClientError):
    """Exception raised for exchange rate API errors."""


class ExchangeRateClient(AsyncHTTPClient):
    """Resolves how many quote-currency units one base-currency unit buys.

    Failures are fully absorbed: resolve_rate() returns the configured
    fallback rate instead of raising.
    """

    error_class = ExchangeRateAPIError

    def __init__(
        self,
        url: str | None = None,
        quote_currency: str | None = None,
        fallback_rate: Decimal | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            timeout=timeout or settings.http_timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self.url = url or settings.exchange_rate_api_url
        self.quote_currency = (quote_currency or settings.quote_currency).upper()
        self.fallback_rate = (
            fallback_rate if fallback_rate is not None else settings.fallback_fx_rate
        )

    async def fetch_rate(self) -> Decimal:
        """Fetch the current rate.

        Raises:
            ExchangeRateAPIError: On request failure or a body without a usable rate
        """
        data = await self.get_json(self.url)
        try:
            rate = Decimal(str(data["rates"][self.quote_currency]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise ExchangeRateAPIError(f"No {self.quote_currency} rate in response") from e

        if not rate.is_finite() or rate <= 0:
            raise ExchangeRateAPIError(f"Unusable {self.quote_currency} rate: {rate}")
        return rate

    async def resolve_rate(self) -> Decimal:
        """Return the current rate, or the fallback rate on any failure."""
        try:
            rate = await self.fetch_rate()
        except ExchangeRateAPIError as e:
            logger.warning(f"Exchange rate unavailable ({e}), using fallback {self.fallback_rate}")
            return self.fallback_rate
        except Exception:
            logger.exception(
                f"Unexpected error resolving exchange rate, using fallback {self.fallback_rate}"
            )
            return self.fallback_rate

        logger.info(
            f"Resolved exchange rate 1 {settings.base_currency} = {rate} {self.quote_currency}"
        )
        return rate
