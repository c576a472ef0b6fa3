"""Portfolio session - owns the price cache and history and runs refresh cycles.

A refresh cycle fans out three independent tasks (crypto quotes, fx rate,
equity quotes), joins on all of them, computes the valuation and only then
publishes the merged price cache, the valuation and the new history point
together. Cycles never overlap: a trigger arriving while one is running
either joins it or queues one follow-up cycle.
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Self, TypeVar

from pydantic import ValidationError
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from portfolio_tracker.config import settings
from portfolio_tracker.constants import StorageKey
from portfolio_tracker.schemas.history import HistorySeriesAdapter, HistoryWindowResult
from portfolio_tracker.schemas.holding import (
    Holding,
    HoldingsConfig,
    HoldingsValidationError,
    parse_holding,
    parse_holdings_payload,
)
from portfolio_tracker.schemas.price import PriceCache
from portfolio_tracker.services.market_data.exchange_rate_client import ExchangeRateClient
from portfolio_tracker.services.market_data.price_resolver import PriceResolver
from portfolio_tracker.services.portfolio.history_store import HistoryStore
from portfolio_tracker.services.portfolio.valuation_service import PortfolioValuationService
from portfolio_tracker.services.portfolio.valuation_types import ValuationSnapshot
from portfolio_tracker.services.repositories.exceptions import (
    NotFoundError,
    StorageReadError,
    StorageWriteError,
)
from portfolio_tracker.services.repositories.key_value_repository import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _load_blob(
    store: KeyValueStore, key: str, parse: Callable[[str], T], default: T
) -> tuple[T, bool]:
    """Decode a persisted blob.

    Returns the decoded value (``default`` if absent or unusable) and whether
    writing the in-memory value back is safe. A blob that could not be read
    or decoded is left in storage untouched.
    """
    try:
        blob = store.get(key)
    except StorageReadError as e:
        logger.error(f"Could not read {key}, starting from defaults: {e}")
        return default, False
    if blob is None:
        return default, True
    try:
        return parse(blob), True
    except (ValidationError, ValueError):
        logger.warning(f"Ignoring unreadable {key} blob, starting from defaults")
        return default, False


class PortfolioSession:
    """Explicit state for one running portfolio: holdings, price cache, history.

    Usage:
        session = PortfolioSession.load(store)
        valuation = await session.refresh()
        chart = session.history_window(HistoryWindow.MONTH)
        await session.close()
    """

    def __init__(
        self,
        store: KeyValueStore,
        holdings: HoldingsConfig | None = None,
        price_cache: PriceCache | None = None,
        history: HistoryStore | None = None,
        resolver: PriceResolver | None = None,
        fx_client: ExchangeRateClient | None = None,
        valuation_service: PortfolioValuationService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.holdings = holdings or HoldingsConfig()
        self.price_cache = price_cache or PriceCache()
        self.history = history or HistoryStore()
        self.resolver = resolver or PriceResolver()
        self.fx_client = fx_client or ExchangeRateClient()
        self.valuation_service = valuation_service or PortfolioValuationService()
        self._clock = clock

        # Published results of the last completed cycle
        self.fx_rate: Decimal = settings.fallback_fx_rate
        self.valuation: ValuationSnapshot | None = None
        self.last_update: datetime | None = None

        self._inflight: asyncio.Task | None = None
        self._rerun_requested = False
        # Keys whose stored blob failed to load; never written until replaced
        self._protected_keys: set[str] = set()

    @classmethod
    def load(cls, store: KeyValueStore, **kwargs: Any) -> Self:
        """Build a session from the persisted config, price cache and history blobs."""
        holdings, config_ok = _load_blob(
            store, StorageKey.CONFIG, HoldingsConfig.model_validate_json, HoldingsConfig()
        )
        price_cache, cache_ok = _load_blob(
            store, StorageKey.PRICE_CACHE, PriceCache.model_validate_json, PriceCache()
        )
        points, history_ok = _load_blob(
            store, StorageKey.HISTORY, HistorySeriesAdapter.validate_json, []
        )

        logger.info(
            f"Loaded session: {sum(1 for _ in holdings.holdings())} holdings, "
            f"{len(price_cache.crypto) + len(price_cache.equities)} cached quotes, "
            f"{len(points)} history points"
        )
        session = cls(
            store,
            holdings=holdings,
            price_cache=price_cache,
            history=HistoryStore(points),
            **kwargs,
        )
        session._protected_keys = {
            key
            for key, ok in (
                (StorageKey.CONFIG, config_ok),
                (StorageKey.PRICE_CACHE, cache_ok),
                (StorageKey.HISTORY, history_ok),
            )
            if not ok
        }
        return session

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Wait for an in-flight cycle, flush every blob and release HTTP clients."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)

        self._save(StorageKey.CONFIG, self.holdings.model_dump_json)
        self._save(StorageKey.PRICE_CACHE, self.price_cache.model_dump_json)
        self._save(StorageKey.HISTORY, self._history_blob)

        await self.resolver.aclose()
        await self.fx_client.aclose()

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    async def refresh(self, queue_if_busy: bool = True) -> ValuationSnapshot | None:
        """Run a refresh cycle, or join the one already running.

        Args:
            queue_if_busy: When a cycle is already running, run exactly one
                more after it (for triggers that changed the holdings).
                Otherwise just wait for the running cycle.

        Returns:
            The most recently published valuation
        """
        if self.is_refreshing:
            if queue_if_busy:
                self._rerun_requested = True
        else:
            self._rerun_requested = False
            self._inflight = asyncio.create_task(self._run_cycles())
        return await asyncio.shield(self._inflight)

    async def _run_cycles(self) -> ValuationSnapshot | None:
        while True:
            try:
                await self._run_cycle()
            except Exception:
                logger.exception("Refresh cycle failed, keeping the last published valuation")
            if not self._rerun_requested:
                return self.valuation
            self._rerun_requested = False
            logger.info("Holdings changed during refresh, running one more cycle")

    async def _run_cycle(self) -> ValuationSnapshot:
        holdings = self.holdings

        async with asyncio.TaskGroup() as tg:
            crypto_task = tg.create_task(self.resolver.resolve_crypto(holdings.crypto_price_ids()))
            fx_task = tg.create_task(self.fx_client.resolve_rate())
            equity_task = tg.create_task(self.resolver.resolve_equities(holdings.equity_symbols()))

        price_cache = self.price_cache.merged(crypto_task.result(), equity_task.result())
        fx_rate = fx_task.result()
        valuation = self.valuation_service.compute_valuation(
            holdings,
            crypto_prices=price_cache.crypto_prices(),
            crypto_changes=price_cache.crypto_changes(),
            equity_quotes=price_cache.equities,
            fx_rate=fx_rate,
            as_of=self._clock(),
        )

        # Publish everything from this cycle at once
        self.price_cache = price_cache
        self.fx_rate = fx_rate
        self._protected_keys.discard(StorageKey.PRICE_CACHE)
        self.valuation = valuation
        self.last_update = valuation.timestamp
        if valuation.total > 0:
            self.history.append(valuation.to_history_point(), now=valuation.timestamp)

        self._save(StorageKey.PRICE_CACHE, price_cache.model_dump_json)
        if valuation.total > 0:
            self._save(StorageKey.HISTORY, self._history_blob)

        logger.info(
            f"Refresh complete: total {valuation.total:.2f} "
            f"{self.valuation_service.base_currency}, fx {fx_rate}, "
            f"{len(self.history)} history points"
        )
        return valuation

    async def run_forever(
        self, interval: float | None = None, stop: asyncio.Event | None = None
    ) -> None:
        """Refresh on a fixed interval until ``stop`` is set."""
        interval = interval or settings.refresh_interval_seconds
        stop = stop or asyncio.Event()
        logger.info(f"Starting periodic refresh every {interval:.0f}s")

        while not stop.is_set():
            await self.refresh(queue_if_busy=False)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _history_blob(self) -> str:
        return HistorySeriesAdapter.dump_json(list(self.history.points)).decode()

    def _save(self, key: str, blob: Callable[[], str]) -> bool:
        """Write a blob; on failure compact history once and retry.

        Keys whose stored blob failed to load are skipped until the
        in-memory value is deliberately replaced.

        ``blob`` is called on every attempt so a retried history write
        serializes the compacted series. A second failure is logged and
        swallowed.
        """
        if key in self._protected_keys:
            logger.warning(f"Not writing {key}: the stored blob failed to load and was kept")
            return False
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(2),
                retry=retry_if_exception_type(StorageWriteError),
                before_sleep=functools.partial(self._compact_for_space, key),
                reraise=True,
            ):
                with attempt:
                    self.store.set(key, blob())
        except StorageWriteError as e:
            logger.error(f"Giving up persisting {key}: {e}")
            return False
        return True

    def _compact_for_space(self, key: str, retry_state: RetryCallState) -> None:
        removed = self.history.compact(self._clock())
        logger.warning(
            f"Writing {key} failed ({retry_state.outcome.exception()}), "
            f"compacted history by {removed} points before retrying"
        )
        if key == StorageKey.HISTORY or StorageKey.HISTORY in self._protected_keys:
            return
        try:
            self.store.set(StorageKey.HISTORY, self._history_blob())
        except StorageWriteError as e:
            logger.warning(f"Could not write compacted history: {e}")

    # ------------------------------------------------------------------
    # Holdings editing (each change persists config and refreshes)
    # ------------------------------------------------------------------

    async def import_holdings(
        self, payload: str | bytes | dict[str, Any]
    ) -> ValuationSnapshot | None:
        """Replace the holdings tree with an imported payload.

        Raises:
            HoldingsValidationError: If the payload is malformed; nothing changes
        """
        holdings = parse_holdings_payload(payload)
        return await self._replace_holdings(holdings)

    def export_holdings(self) -> str:
        return self.holdings.model_dump_json(indent=2)

    async def add_holding(self, holding: Holding | dict[str, Any]) -> ValuationSnapshot | None:
        """Append a holding to its category.

        Raises:
            HoldingsValidationError: If the holding is malformed or its id is taken
        """
        if isinstance(holding, dict):
            holding = parse_holding(holding)
        try:
            holdings = self.holdings.with_holding(holding)
        except ValidationError as e:
            raise HoldingsValidationError("Invalid holding", errors=e.errors()) from e
        return await self._replace_holdings(holdings)

    async def update_quantity(
        self, entry_id: str, quantity: Decimal | float | str
    ) -> ValuationSnapshot | None:
        """Set the quantity of one holding.

        Raises:
            NotFoundError: If no holding has ``entry_id``
            HoldingsValidationError: If ``quantity`` is not numeric; nothing changes
        """
        if self.holdings.find(entry_id) is None:
            raise NotFoundError("Holding", entry_id)
        try:
            holdings = self.holdings.with_quantity(entry_id, quantity)
        except ValidationError as e:
            raise HoldingsValidationError("Invalid quantity", errors=e.errors()) from e
        return await self._replace_holdings(holdings)

    async def remove_holding(self, entry_id: str) -> ValuationSnapshot | None:
        """Delete one holding.

        Raises:
            NotFoundError: If no holding has ``entry_id``
        """
        if self.holdings.find(entry_id) is None:
            raise NotFoundError("Holding", entry_id)
        return await self._replace_holdings(self.holdings.without_holding(entry_id))

    async def reset(self, holdings: HoldingsConfig | None = None) -> ValuationSnapshot | None:
        """Replace the holdings and clear the history series."""
        self.history.clear()
        self._protected_keys.discard(StorageKey.HISTORY)
        self._save(StorageKey.HISTORY, self._history_blob)
        return await self._replace_holdings(holdings or HoldingsConfig())

    async def _replace_holdings(self, holdings: HoldingsConfig) -> ValuationSnapshot | None:
        self.holdings = holdings
        self._protected_keys.discard(StorageKey.CONFIG)
        self._save(StorageKey.CONFIG, holdings.model_dump_json)
        return await self.refresh(queue_if_busy=True)

    # ------------------------------------------------------------------
    # Reads for display
    # ------------------------------------------------------------------

    def history_window(self, window: str) -> HistoryWindowResult:
        """Chart points and period change for a HistoryWindow value."""
        return self.history.window(window, now=self._clock())
