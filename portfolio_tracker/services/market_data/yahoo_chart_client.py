"""Yahoo Finance chart client for fund and equity quotes.

The chart endpoint is reached through public proxy endpoints. Some proxies
wrap the upstream body as a JSON string under ``contents``; others return it
unchanged. Both shapes are accepted.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

import httpx

from portfolio_tracker.config import settings
from portfolio_tracker.schemas.price import PriceQuote
from portfolio_tracker.services.shared.http_client import AsyncHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChartProxy:
    """A proxy endpoint; ``template`` embeds the URL-encoded target URL."""

    name: str
    template: str

    def wrap(self, target_url: str) -> str:
        return self.template.format(url=quote(target_url, safe=""))


# Tried in order for every symbol
CHART_PROXIES: tuple[ChartProxy, ...] = (
    ChartProxy("allorigins", "https://api.allorigins.win/get?url={url}"),
    ChartProxy("corsproxy", "https://corsproxy.io/?{url}"),
)


class YahooChartError(HTTPClientError):
    """Exception raised when a chart quote cannot be fetched or parsed."""


def parse_chart_payload(
    symbol: str, payload: Any, supported_currencies: tuple[str, ...]
) -> PriceQuote:
    """Extract a quote from a (possibly proxy-wrapped) chart response.

    The 24h change is ``(price - previous_close) / previous_close * 100``
    when a previous close is present, else 0.

    Raises:
        YahooChartError: If the body has no usable quote or its currency is
            not one of ``supported_currencies``
    """
    if isinstance(payload, dict) and isinstance(payload.get("contents"), str):
        try:
            payload = json.loads(payload["contents"])
        except ValueError as e:
            raise YahooChartError(f"Malformed proxied chart body for {symbol}") from e

    try:
        meta = payload["chart"]["result"][0]["meta"]
        price = Decimal(str(meta["regularMarketPrice"]))
    except (KeyError, IndexError, TypeError, InvalidOperation) as e:
        raise YahooChartError(f"No chart quote for {symbol}") from e

    currency = str(meta.get("currency") or "").upper()
    if currency not in supported_currencies:
        raise YahooChartError(f"Unsupported quote currency {currency!r} for {symbol}")

    previous = meta.get("chartPreviousClose") or meta.get("previousClose")
    if previous:
        try:
            previous_close = Decimal(str(previous))
        except InvalidOperation as e:
            raise YahooChartError(f"Malformed previous close for {symbol}") from e
        change = (price - previous_close) / previous_close * 100
    else:
        change = Decimal("0")

    return PriceQuote(identifier=symbol, price=price, currency=currency, change_24h=change)


class YahooChartClient(AsyncHTTPClient):
    """Fetches one symbol's quote through one proxy endpoint.

    Usage:
        async with YahooChartClient() as client:
            quote = await client.fetch_quote("IWDA.AS", client.proxies[0])
    """

    error_class = YahooChartError

    def __init__(
        self,
        chart_url: str | None = None,
        proxies: tuple[ChartProxy, ...] = CHART_PROXIES,
        supported_currencies: tuple[str, ...] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            timeout=timeout or settings.equity_quote_timeout_seconds,
            transport=transport,
        )
        self.chart_url = (chart_url or settings.yahoo_chart_url).rstrip("/")
        self.proxies = proxies
        self.supported_currencies = supported_currencies or (
            settings.base_currency.upper(),
            settings.quote_currency.upper(),
        )

    def target_url(self, symbol: str) -> str:
        return f"{self.chart_url}/{symbol}?interval=1d&range=2d"

    async def fetch_quote(self, symbol: str, proxy: ChartProxy) -> PriceQuote:
        """Fetch a quote for ``symbol`` through ``proxy``.

        Raises:
            YahooChartError: On request failure, non-success status or an
                unparseable body
        """
        payload = await self.get_json(proxy.wrap(self.target_url(symbol)))
        quote_ = parse_chart_payload(symbol, payload, self.supported_currencies)
        logger.debug(f"Fetched {symbol} via {proxy.name}: {quote_.price} {quote_.currency}")
        return quote_
