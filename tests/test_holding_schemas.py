"""Tests for holdings schemas and payload validation."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from portfolio_tracker.constants import HoldingCategory
from portfolio_tracker.schemas.holding import (
    CryptoHolding,
    HoldingsConfig,
    HoldingsValidationError,
    parse_holding,
    parse_holdings_payload,
)
from portfolio_tracker.schemas.price import PriceCache, PriceQuote


class TestParseHoldingsPayload:
    """Tests for parse_holdings_payload."""

    def test_round_trips_export(self, holdings):
        """An exported tree imports back to the same tree."""
        assert parse_holdings_payload(holdings.model_dump_json()) == holdings

    def test_accepts_mapping(self):
        """Already decoded payloads are accepted."""
        config = parse_holdings_payload({"cash": [{"id": "a", "name": "Bank", "quantity": 5}]})
        assert config.cash[0].quantity == Decimal(5)

    def test_invalid_json(self):
        """Malformed JSON is rejected."""
        with pytest.raises(HoldingsValidationError, match="Invalid JSON"):
            parse_holdings_payload("{not json")

    def test_not_an_object(self):
        """A JSON array is not a holdings tree."""
        with pytest.raises(HoldingsValidationError, match="must be a JSON object"):
            parse_holdings_payload("[]")

    def test_missing_required_field(self):
        """Entries without required fields are rejected with details."""
        payload = json.dumps({"crypto": [{"id": "b", "symbol": "BTC", "quantity": "1"}]})

        with pytest.raises(HoldingsValidationError) as exc_info:
            parse_holdings_payload(payload)

        assert any("price_id" in err["loc"] for err in exc_info.value.errors)

    def test_non_numeric_quantity(self):
        """Quantities must be numeric."""
        with pytest.raises(HoldingsValidationError):
            parse_holdings_payload({"cash": [{"id": "a", "name": "Bank", "quantity": "lots"}]})

    def test_negative_quantity_passes_through(self):
        """Negative quantities are not rejected."""
        config = parse_holdings_payload({"cash": [{"id": "a", "name": "Loan", "quantity": "-50"}]})
        assert config.cash[0].quantity == Decimal(-50)

    def test_duplicate_ids_rejected(self):
        """Ids must be unique across categories."""
        payload = {
            "cash": [{"id": "x", "name": "Bank", "quantity": 1}],
            "crypto": [{"id": "x", "symbol": "BTC", "price_id": "bitcoin", "quantity": 1}],
        }

        with pytest.raises(HoldingsValidationError):
            parse_holdings_payload(payload)


class TestParseHolding:
    """Tests for the tagged holding union."""

    def test_discriminates_by_category(self):
        """The category tag selects the holding model."""
        holding = parse_holding(
            {
                "category": "crypto",
                "id": "e",
                "symbol": "ETH",
                "price_id": "ethereum",
                "quantity": 2,
            }
        )
        assert isinstance(holding, CryptoHolding)

    def test_unknown_category(self):
        """Unknown category tags are rejected."""
        with pytest.raises(HoldingsValidationError):
            parse_holding({"category": "bonds", "id": "x", "quantity": 1})


class TestHoldingsConfig:
    """Tests for HoldingsConfig helpers."""

    def test_crypto_price_ids_deduplicated(self, holdings):
        """Crypto and stablecoin ids are collected once each."""
        assert holdings.crypto_price_ids() == ["bitcoin", "ethereum", "usd-coin"]

    def test_equity_symbols(self, holdings):
        """Fund and equity symbols are collected in order."""
        assert holdings.equity_symbols() == ["IWDA.AS", "TSLA"]

    def test_with_holding_appends(self, holdings):
        """A new holding lands at the end of its category."""
        added = holdings.with_holding(
            CryptoHolding(id="sol", symbol="SOL", price_id="solana", quantity=Decimal(3))
        )

        assert [h.id for h in added.crypto] == ["btc-exchange", "eth-wallet", "sol"]
        assert [h.id for h in holdings.crypto] == ["btc-exchange", "eth-wallet"]

    def test_with_holding_duplicate_id(self, holdings):
        """Adding a taken id fails validation."""
        with pytest.raises(ValidationError):
            holdings.with_holding(
                CryptoHolding(id="tsla", symbol="X", price_id="x", quantity=Decimal(1))
            )

    def test_with_quantity_and_without_holding(self, holdings):
        """Quantity updates and removals return new trees."""
        updated = holdings.with_quantity("tsla", Decimal(5))
        removed = updated.without_holding("iwda")

        assert updated.find("tsla").quantity == Decimal(5)
        assert removed.find("iwda") is None
        assert holdings.find("tsla").quantity == Decimal(2)

    def test_with_quantity_validates(self, holdings):
        """Replacement quantities are coerced to Decimal or rejected."""
        updated = holdings.with_quantity("tsla", 4.5)

        assert updated.find("tsla").quantity == Decimal("4.5")
        assert isinstance(updated.find("tsla").quantity, Decimal)
        with pytest.raises(ValidationError):
            holdings.with_quantity("tsla", "lots")

    def test_by_category(self, holdings):
        """by_category returns the list for a category tag."""
        assert [h.id for h in holdings.by_category(HoldingCategory.CASH)] == [
            "livret-a",
            "checking",
        ]


class TestPriceCache:
    """Tests for merging fresh quotes into the cache."""

    def test_missing_ids_keep_last_known(self):
        """Ids without a fresh quote keep their cached one."""
        cache = PriceCache(
            crypto={
                "bitcoin": PriceQuote(identifier="bitcoin", price=Decimal(60000), currency="USD")
            }
        )

        merged = cache.merged({}, {})

        assert merged.crypto_prices() == {"bitcoin": Decimal(60000)}

    def test_fresh_quote_without_change_keeps_last_change(self):
        """A price-only quote keeps the previous 24h change."""
        cache = PriceCache(
            crypto={
                "bitcoin": PriceQuote(
                    identifier="bitcoin",
                    price=Decimal(60000),
                    currency="USD",
                    change_24h=Decimal(3),
                )
            }
        )

        merged = cache.merged(
            {"bitcoin": PriceQuote(identifier="bitcoin", price=Decimal(61000), currency="USD")}, {}
        )

        assert merged.crypto_prices() == {"bitcoin": Decimal(61000)}
        assert merged.crypto_changes() == {"bitcoin": Decimal(3)}
