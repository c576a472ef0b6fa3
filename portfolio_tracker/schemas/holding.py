"""Pydantic schemas for the holdings tree.

Each holding kind is its own model tagged by ``category``; the tree keeps one
ordered list per category. Negative quantities are not rejected here, they are
passed through to valuation unchanged.
"""

import json
from collections.abc import Iterator
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from portfolio_tracker.constants import HoldingCategory


class HoldingsValidationError(ValueError):
    """Raised when a holdings payload cannot be accepted."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class HoldingBase(BaseModel):
    """Fields shared by every holding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Entry id, unique across the tree")
    quantity: Decimal = Field(..., description="Amount held or share count")
    location: str | None = Field(None, description="Account or wallet label")


class CashHolding(HoldingBase):
    """Bank balance held in the quote currency."""

    category: Literal["cash"] = HoldingCategory.CASH
    name: str


class StablecoinHolding(HoldingBase):
    """Stablecoin position priced by the crypto providers."""

    category: Literal["stablecoin"] = HoldingCategory.STABLECOIN
    symbol: str
    price_id: str = Field(..., min_length=1, description="Crypto provider asset id")


class CryptoHolding(HoldingBase):
    """Cryptocurrency position priced by the crypto providers."""

    category: Literal["crypto"] = HoldingCategory.CRYPTO
    symbol: str
    price_id: str = Field(..., min_length=1, description="Crypto provider asset id")


class _ListedHolding(HoldingBase):
    symbol: str = Field(..., min_length=1)
    name: str | None = None
    static_price_base: Decimal | None = Field(
        None, description="Manual price in the base currency"
    )
    static_price_quote: Decimal | None = Field(
        None, description="Manual price in the quote currency"
    )


class FundHolding(_ListedHolding):
    """Fund or ETF position priced by the equity quote provider."""

    category: Literal["fund"] = HoldingCategory.FUND


class EquityHolding(_ListedHolding):
    """Single stock position priced by the equity quote provider."""

    category: Literal["equity"] = HoldingCategory.EQUITY


Holding = Annotated[
    CashHolding | StablecoinHolding | CryptoHolding | FundHolding | EquityHolding,
    Field(discriminator="category"),
]

_holding_adapter: TypeAdapter[Holding] = TypeAdapter(Holding)

# Category tag -> HoldingsConfig field
CATEGORY_FIELDS: dict[str, str] = {
    HoldingCategory.CASH: "cash",
    HoldingCategory.STABLECOIN: "stablecoins",
    HoldingCategory.CRYPTO: "crypto",
    HoldingCategory.FUND: "funds",
    HoldingCategory.EQUITY: "equities",
}


class HoldingsConfig(BaseModel):
    """The full holdings tree, one ordered list per category."""

    model_config = ConfigDict(frozen=True)

    cash: list[CashHolding] = Field(default_factory=list)
    stablecoins: list[StablecoinHolding] = Field(default_factory=list)
    crypto: list[CryptoHolding] = Field(default_factory=list)
    funds: list[FundHolding] = Field(default_factory=list)
    equities: list[EquityHolding] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "HoldingsConfig":
        seen: set[str] = set()
        for holding in self.holdings():
            if holding.id in seen:
                raise ValueError(f"Duplicate holding id: {holding.id}")
            seen.add(holding.id)
        return self

    def holdings(self) -> Iterator[Holding]:
        """Iterate every holding in category order, preserving insertion order."""
        for field in CATEGORY_FIELDS.values():
            yield from getattr(self, field)

    def by_category(self, category: str) -> list[Holding]:
        return list(getattr(self, CATEGORY_FIELDS[category]))

    def crypto_price_ids(self) -> list[str]:
        """Deduplicated crypto provider ids across crypto and stablecoin holdings."""
        ids = [h.price_id for h in self.crypto] + [h.price_id for h in self.stablecoins]
        return list(dict.fromkeys(ids))

    def equity_symbols(self) -> list[str]:
        """Deduplicated symbols across fund and equity holdings."""
        return list(dict.fromkeys(h.symbol for h in [*self.funds, *self.equities]))

    def find(self, entry_id: str) -> Holding | None:
        return next((h for h in self.holdings() if h.id == entry_id), None)

    def with_holding(self, holding: Holding) -> "HoldingsConfig":
        """Return a copy with ``holding`` appended to its category list."""
        field = CATEGORY_FIELDS[holding.category]
        return HoldingsConfig.model_validate(
            {**self._as_lists(), field: [*getattr(self, field), holding]}
        )

    def without_holding(self, entry_id: str) -> "HoldingsConfig":
        lists = {
            field: [h for h in items if h.id != entry_id]
            for field, items in self._as_lists().items()
        }
        return HoldingsConfig.model_validate(lists)

    def with_quantity(self, entry_id: str, quantity: Decimal | float | str) -> "HoldingsConfig":
        """Return a copy with one quantity replaced, validated like an import."""
        lists = {
            field: [
                type(h).model_validate({**h.model_dump(), "quantity": quantity})
                if h.id == entry_id
                else h
                for h in items
            ]
            for field, items in self._as_lists().items()
        }
        return HoldingsConfig.model_validate(lists)

    def _as_lists(self) -> dict[str, list[Holding]]:
        return {field: list(getattr(self, field)) for field in CATEGORY_FIELDS.values()}


def parse_holding(payload: dict[str, Any]) -> Holding:
    """Validate a single tagged holding."""
    try:
        return _holding_adapter.validate_python(payload)
    except ValidationError as e:
        raise HoldingsValidationError("Invalid holding", errors=e.errors()) from e


def parse_holdings_payload(payload: str | bytes | dict[str, Any]) -> HoldingsConfig:
    """Validate an imported holdings tree.

    Args:
        payload: JSON text or an already decoded mapping

    Returns:
        The validated HoldingsConfig

    Raises:
        HoldingsValidationError: If the payload is not valid JSON or does not
            describe a holdings tree
    """
    if isinstance(payload, str | bytes):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise HoldingsValidationError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise HoldingsValidationError("Holdings payload must be a JSON object")

    try:
        return HoldingsConfig.model_validate(payload)
    except ValidationError as e:
        raise HoldingsValidationError("Invalid holdings payload", errors=e.errors()) from e
