"""Price resolution over ordered provider fallback chains.

Crypto ids go through a chain of sources tried in order until one answers:
CoinGecko (one batched call with 24h changes), then CoinCap (one call per id,
price only). Fund and equity symbols are resolved independently and
concurrently, each walking the chart proxies in order with a per-attempt
timeout.

Nothing here raises to the caller. A failing source moves on to the next
one, and an exhausted chain leaves the affected entries absent.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from portfolio_tracker.config import settings
from portfolio_tracker.schemas.price import PriceQuote
from portfolio_tracker.services.market_data.coincap_client import CoinCapAPIError, CoinCapClient
from portfolio_tracker.services.market_data.coingecko_client import CoinGeckoClient
from portfolio_tracker.services.market_data.yahoo_chart_client import (
    YahooChartClient,
    YahooChartError,
)
from portfolio_tracker.services.shared.http_client import HTTPClientError

logger = logging.getLogger(__name__)

CryptoSource = Callable[[list[str]], Awaitable[dict[str, PriceQuote]]]


class PriceResolver:
    """Resolves current quotes for crypto ids and equity symbols."""

    def __init__(
        self,
        coingecko: CoinGeckoClient | None = None,
        coincap: CoinCapClient | None = None,
        yahoo: YahooChartClient | None = None,
        equity_timeout: float | None = None,
    ) -> None:
        self.coingecko = coingecko or CoinGeckoClient()
        self.coincap = coincap or CoinCapClient()
        self.yahoo = yahoo or YahooChartClient()
        self.equity_timeout = equity_timeout or settings.equity_quote_timeout_seconds

        self._crypto_chain: tuple[tuple[str, CryptoSource], ...] = (
            ("coingecko", self._fetch_crypto_batch),
            ("coincap", self._fetch_crypto_each),
        )

    async def aclose(self) -> None:
        await self.coingecko.aclose()
        await self.coincap.aclose()
        await self.yahoo.aclose()

    async def resolve_crypto(self, ids: Iterable[str]) -> dict[str, PriceQuote]:
        """Resolve crypto quotes, falling back source by source.

        A later source is only tried when the previous one failed as a whole.
        Ids a source does not know are simply absent from its result.

        Args:
            ids: Crypto provider ids (duplicates are ignored)

        Returns:
            Dict mapping id to quote, empty if every source failed
        """
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return {}

        for source, fetch in self._crypto_chain:
            try:
                quotes = await fetch(unique_ids)
            except HTTPClientError as e:
                logger.warning(f"Crypto source {source} unavailable: {e}")
                continue
            except Exception:
                logger.exception(f"Crypto source {source} failed unexpectedly")
                continue

            logger.info(f"Resolved {len(quotes)}/{len(unique_ids)} crypto quotes from {source}")
            return quotes

        logger.error(f"All crypto sources failed for {len(unique_ids)} ids")
        return {}

    async def _fetch_crypto_batch(self, ids: list[str]) -> dict[str, PriceQuote]:
        return await self.coingecko.get_simple_prices(ids)

    async def _fetch_crypto_each(self, ids: list[str]) -> dict[str, PriceQuote]:
        """Query CoinCap id by id, in sequence; failing ids are left out."""
        quotes: dict[str, PriceQuote] = {}
        for coin_id in ids:
            try:
                quotes[coin_id] = await self.coincap.get_price(coin_id)
            except CoinCapAPIError as e:
                logger.warning(f"CoinCap has no price for {coin_id}: {e}")
        return quotes

    async def resolve_equities(self, symbols: Iterable[str]) -> dict[str, PriceQuote]:
        """Resolve fund and equity quotes concurrently, one task per symbol.

        Returns once every symbol has settled. Symbols no proxy could answer
        for are absent from the result.
        """
        unique_symbols = list(dict.fromkeys(symbols))
        if not unique_symbols:
            return {}

        async with asyncio.TaskGroup() as tg:
            tasks = {
                symbol: tg.create_task(self._resolve_equity(symbol)) for symbol in unique_symbols
            }

        quotes = {
            symbol: task.result() for symbol, task in tasks.items() if task.result() is not None
        }
        logger.info(f"Resolved {len(quotes)}/{len(unique_symbols)} equity quotes")
        return quotes

    async def _resolve_equity(self, symbol: str) -> PriceQuote | None:
        """Walk the proxies in order; each attempt is cancelled at the timeout."""
        for proxy in self.yahoo.proxies:
            try:
                return await asyncio.wait_for(
                    self.yahoo.fetch_quote(symbol, proxy), timeout=self.equity_timeout
                )
            except TimeoutError:
                logger.warning(
                    f"Quote for {symbol} via {proxy.name} timed out after {self.equity_timeout}s"
                )
            except YahooChartError as e:
                logger.warning(f"Quote for {symbol} via {proxy.name} failed: {e}")
            except Exception:
                logger.exception(f"Unexpected error fetching {symbol} via {proxy.name}")

        logger.warning(f"No quote for {symbol} from any proxy")
        return None
