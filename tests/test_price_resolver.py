"""Tests for PriceResolver fallback chains."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx

from portfolio_tracker.schemas.price import PriceQuote
from portfolio_tracker.services.market_data.coincap_client import CoinCapAPIError, CoinCapClient
from portfolio_tracker.services.market_data.coingecko_client import (
    CoinGeckoAPIError,
    CoinGeckoClient,
)
from portfolio_tracker.services.market_data.price_resolver import PriceResolver
from portfolio_tracker.services.market_data.yahoo_chart_client import YahooChartClient
from tests.conftest import chart_payload


def quote(identifier: str, price: str, change: str | None = None) -> PriceQuote:
    return PriceQuote(
        identifier=identifier,
        price=Decimal(price),
        currency="USD",
        change_24h=Decimal(change) if change is not None else None,
    )


def make_resolver(coingecko=None, coincap=None, yahoo=None, equity_timeout=1.0) -> PriceResolver:
    return PriceResolver(
        coingecko=coingecko or MagicMock(spec=CoinGeckoClient),
        coincap=coincap or MagicMock(spec=CoinCapClient),
        yahoo=yahoo or MagicMock(spec=YahooChartClient),
        equity_timeout=equity_timeout,
    )


class TestResolveCrypto:
    """Tests for the crypto source chain."""

    def test_primary_success_skips_fallback(self):
        """CoinCap is never called when CoinGecko answers."""
        coingecko = MagicMock(spec=CoinGeckoClient)
        coingecko.get_simple_prices = AsyncMock(
            return_value={"bitcoin": quote("bitcoin", "65000", "1.5")}
        )
        coincap = MagicMock(spec=CoinCapClient)
        coincap.get_price = AsyncMock()
        resolver = make_resolver(coingecko=coingecko, coincap=coincap)

        quotes = asyncio.run(resolver.resolve_crypto(["bitcoin", "bitcoin"]))

        assert quotes["bitcoin"].change_24h == Decimal("1.5")
        coingecko.get_simple_prices.assert_awaited_once_with(["bitcoin"])
        coincap.get_price.assert_not_called()

    def test_partial_primary_answer_is_not_a_failure(self):
        """Missing ids in a successful answer do not trigger the fallback."""
        coingecko = MagicMock(spec=CoinGeckoClient)
        coingecko.get_simple_prices = AsyncMock(return_value={"bitcoin": quote("bitcoin", "1")})
        coincap = MagicMock(spec=CoinCapClient)
        coincap.get_price = AsyncMock()
        resolver = make_resolver(coingecko=coingecko, coincap=coincap)

        quotes = asyncio.run(resolver.resolve_crypto(["bitcoin", "gho"]))

        assert set(quotes) == {"bitcoin"}
        coincap.get_price.assert_not_called()

    def test_primary_failure_uses_fallback_per_id(self):
        """CoinGecko failure falls back to CoinCap id by id."""
        coingecko = MagicMock(spec=CoinGeckoClient)
        coingecko.get_simple_prices = AsyncMock(side_effect=CoinGeckoAPIError("HTTP 429"))
        coincap = MagicMock(spec=CoinCapClient)
        coincap.get_price = AsyncMock(
            side_effect=[
                quote("bitcoin", "64000"),
                CoinCapAPIError("HTTP 404"),
                quote("aave", "90"),
            ]
        )
        resolver = make_resolver(coingecko=coingecko, coincap=coincap)

        quotes = asyncio.run(resolver.resolve_crypto(["bitcoin", "gho", "aave"]))

        assert set(quotes) == {"bitcoin", "aave"}
        assert quotes["bitcoin"].change_24h is None
        assert [c.args[0] for c in coincap.get_price.await_args_list] == ["bitcoin", "gho", "aave"]

    def test_unexpected_primary_error_falls_through(self):
        """Unexpected errors also move on to the next source."""
        coingecko = MagicMock(spec=CoinGeckoClient)
        coingecko.get_simple_prices = AsyncMock(side_effect=ValueError("bad number"))
        coincap = MagicMock(spec=CoinCapClient)
        coincap.get_price = AsyncMock(return_value=quote("bitcoin", "64000"))
        resolver = make_resolver(coingecko=coingecko, coincap=coincap)

        assert set(asyncio.run(resolver.resolve_crypto(["bitcoin"]))) == {"bitcoin"}

    def test_every_source_failing_gives_empty_map(self):
        """Exhausted chain resolves to an empty map."""
        coingecko = MagicMock(spec=CoinGeckoClient)
        coingecko.get_simple_prices = AsyncMock(side_effect=CoinGeckoAPIError("down"))
        coincap = MagicMock(spec=CoinCapClient)
        coincap.get_price = AsyncMock(side_effect=CoinCapAPIError("down"))
        resolver = make_resolver(coingecko=coingecko, coincap=coincap)

        assert asyncio.run(resolver.resolve_crypto(["bitcoin", "ethereum"])) == {}

    def test_no_ids_makes_no_calls(self):
        """No ids means no provider calls."""
        coingecko = MagicMock(spec=CoinGeckoClient)
        coingecko.get_simple_prices = AsyncMock()
        resolver = make_resolver(coingecko=coingecko)

        assert asyncio.run(resolver.resolve_crypto([])) == {}
        coingecko.get_simple_prices.assert_not_called()


class TestResolveEquities:
    """Tests for per-symbol proxy fallback over real HTTP plumbing."""

    def make_yahoo(self, handler) -> YahooChartClient:
        return YahooChartClient(
            chart_url="https://yahoo.test/chart",
            supported_currencies=("USD", "EUR"),
            transport=httpx.MockTransport(handler),
        )

    def test_timeout_moves_to_next_proxy(self):
        """A timed out attempt is abandoned for the next proxy, not retried."""
        hosts = []

        async def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if request.url.host == "api.allorigins.win":
                await asyncio.sleep(5)
            return httpx.Response(200, json=chart_payload(101.0, 100.0))

        async def scenario():
            resolver = make_resolver(yahoo=self.make_yahoo(handler), equity_timeout=0.05)
            try:
                return await resolver.resolve_equities(["IWDA.AS"])
            finally:
                await resolver.yahoo.aclose()

        quotes = asyncio.run(scenario())

        assert quotes["IWDA.AS"].price == Decimal("101.0")
        assert hosts == ["api.allorigins.win", "corsproxy.io"]

    def test_first_proxy_error_moves_to_next(self):
        """An error status moves on to the next proxy."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "api.allorigins.win":
                return httpx.Response(500)
            return httpx.Response(200, json=chart_payload(10.0, 10.0, currency="USD"))

        resolver = make_resolver(yahoo=self.make_yahoo(handler))

        quotes = asyncio.run(resolver.resolve_equities(["TSLA"]))

        assert quotes["TSLA"].change_24h == Decimal("0")

    def test_symbol_absent_when_all_proxies_fail(self):
        """Symbols no proxy answers for are absent."""
        def handler(request: httpx.Request) -> httpx.Response:
            target = request.url.params.get("url") or str(request.url)
            if "BROKEN" in target:
                return httpx.Response(503)
            return httpx.Response(200, json=chart_payload(20.0, 25.0))

        resolver = make_resolver(yahoo=self.make_yahoo(handler))

        quotes = asyncio.run(resolver.resolve_equities(["GOOD", "BROKEN"]))

        assert set(quotes) == {"GOOD"}
        assert quotes["GOOD"].change_24h == Decimal("-20")

    def test_symbols_resolve_concurrently(self):
        """Symbols are fetched in parallel."""
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.05)
            in_flight -= 1
            return httpx.Response(200, json=chart_payload(1.0, 1.0))

        resolver = make_resolver(yahoo=self.make_yahoo(handler))

        quotes = asyncio.run(resolver.resolve_equities(["A", "B", "C"]))

        assert set(quotes) == {"A", "B", "C"}
        assert peak == 3
