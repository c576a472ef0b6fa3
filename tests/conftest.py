"""Shared test fixtures."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from portfolio_tracker.database import create_db_engine, create_session_factory
from portfolio_tracker.schemas.holding import HoldingsConfig
from portfolio_tracker.services.repositories.key_value_repository import (
    InMemoryKeyValueStore,
    SqlKeyValueStore,
)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def chart_payload(price: float, previous_close: float | None, currency: str = "EUR") -> dict:
    """Build a Yahoo chart response body."""
    meta = {"regularMarketPrice": price, "currency": currency}
    if previous_close is not None:
        meta["chartPreviousClose"] = previous_close
    return {"chart": {"result": [{"meta": meta}], "error": None}}


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def holdings() -> HoldingsConfig:
    """A small holdings tree covering every category."""
    return HoldingsConfig.model_validate(
        {
            "cash": [
                {"id": "livret-a", "name": "Livret A", "quantity": "900"},
                {"id": "checking", "name": "Checking", "quantity": "90"},
            ],
            "stablecoins": [
                {
                    "id": "usdc-wallet",
                    "symbol": "USDC",
                    "price_id": "usd-coin",
                    "quantity": "500",
                    "location": "Wallet",
                },
                {
                    "id": "usdc-exchange",
                    "symbol": "USDC",
                    "price_id": "usd-coin",
                    "quantity": "100",
                    "location": "Exchange",
                },
            ],
            "crypto": [
                {
                    "id": "btc-exchange",
                    "symbol": "BTC",
                    "price_id": "bitcoin",
                    "quantity": "0.01",
                    "location": "Exchange",
                },
                {
                    "id": "eth-wallet",
                    "symbol": "ETH",
                    "price_id": "ethereum",
                    "quantity": "0.5",
                    "location": "Wallet",
                },
            ],
            "funds": [
                {
                    "id": "iwda",
                    "symbol": "IWDA.AS",
                    "name": "iShares Core MSCI World",
                    "quantity": "10",
                    "static_price_quote": "90",
                },
            ],
            "equities": [
                {
                    "id": "tsla",
                    "symbol": "TSLA",
                    "name": "Tesla Inc",
                    "quantity": "2",
                    "static_price_base": "200",
                },
            ],
        }
    )


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def sql_store():
    """SQL-backed store on an in-memory SQLite database."""
    engine = create_db_engine("sqlite:///:memory:")
    yield SqlKeyValueStore(create_session_factory(engine))
    engine.dispose()


@pytest.fixture
def usd_eur_rate() -> Decimal:
    return Decimal("0.9")
