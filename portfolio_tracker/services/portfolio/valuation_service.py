"""Portfolio valuation service - single source of truth for value calculations.

Turns the holdings tree plus resolved quotes and the fx rate into a
ValuationSnapshot: per-holding values, per-symbol groups, category and section
totals, value-weighted 24h changes and the allocation breakdown.

The computation is pure. Every holding takes part in totals and weighted
changes whatever its size; hiding small positions is left to display code
(see CategoryValuation.visible_groups).
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from portfolio_tracker.config import settings
from portfolio_tracker.constants import HoldingCategory, PortfolioSection
from portfolio_tracker.schemas.holding import (
    CashHolding,
    CryptoHolding,
    EquityHolding,
    FundHolding,
    Holding,
    HoldingsConfig,
    StablecoinHolding,
)
from portfolio_tracker.schemas.price import PriceQuote
from portfolio_tracker.services.portfolio.valuation_types import (
    AllocationSlice,
    CategoryValuation,
    LineItem,
    SectionValuation,
    SymbolGroup,
    ValuationSnapshot,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_STABLECOIN_DEFAULT_PRICE = Decimal("1")


@dataclass
class WeightedChange:
    """Accumulates ``sum(value * change) / sum(value)``.

    Members with an unknown change are skipped entirely, so they weigh on
    neither side. With nothing accumulated the result is None, not 0.
    """

    weighted_sum: Decimal = _ZERO
    weight: Decimal = _ZERO

    def add(self, value: Decimal, change: Decimal | None) -> None:
        if change is None:
            return
        self.weighted_sum += value * change
        self.weight += value

    def merge(self, other: "WeightedChange") -> None:
        self.weighted_sum += other.weighted_sum
        self.weight += other.weight

    @property
    def value(self) -> Decimal | None:
        if self.weight == 0:
            return None
        return self.weighted_sum / self.weight


def weighted_change(pairs: list[tuple[Decimal, Decimal | None]]) -> Decimal | None:
    """Value-weighted average change over (value, change) pairs."""
    acc = WeightedChange()
    for value, change in pairs:
        acc.add(value, change)
    return acc.value


def _by_value_desc(entries, total):
    # sorted() is stable, so ties keep insertion order
    return sorted(entries, key=lambda entry: -total(entry))


class PortfolioValuationService:
    """Calculates portfolio values and weighted 24h changes."""

    def __init__(self, base_currency: str | None = None, quote_currency: str | None = None):
        self.base_currency = (base_currency or settings.base_currency).upper()
        self.quote_currency = (quote_currency or settings.quote_currency).upper()

    def compute_valuation(
        self,
        holdings: HoldingsConfig,
        crypto_prices: Mapping[str, Decimal],
        crypto_changes: Mapping[str, Decimal],
        equity_quotes: Mapping[str, PriceQuote],
        fx_rate: Decimal,
        as_of: datetime | None = None,
    ) -> ValuationSnapshot:
        """Compute the full valuation tree.

        Args:
            holdings: The holdings tree
            crypto_prices: Crypto provider id -> price in the base currency
            crypto_changes: Crypto provider id -> 24h percent change
            equity_quotes: Symbol -> live quote
            fx_rate: Quote-currency units per base-currency unit
            as_of: Timestamp of the snapshot (default: now, UTC)

        Returns:
            ValuationSnapshot with all calculated fields
        """
        items_by_category: dict[str, list[LineItem]] = {c: [] for c in HoldingCategory.ALL}
        for holding in holdings.holdings():
            item = self.calculate_line_item(
                holding, crypto_prices, crypto_changes, equity_quotes, fx_rate
            )
            items_by_category[item.category].append(item)

        sections: list[SectionValuation] = []
        portfolio_change = WeightedChange()
        for section, categories in PortfolioSection.CATEGORIES.items():
            section_change = WeightedChange()
            category_valuations = []
            for category in categories:
                valuation, change = self._value_category(category, items_by_category[category])
                section_change.merge(change)
                category_valuations.append(valuation)

            portfolio_change.merge(section_change)
            sections.append(
                SectionValuation(
                    section=section,
                    total=sum((c.total for c in category_valuations), _ZERO),
                    change_24h=section_change.value,
                    categories=tuple(_by_value_desc(category_valuations, lambda c: c.total)),
                )
            )

        total = sum((s.total for s in sections), _ZERO)
        allocation = tuple(
            AllocationSlice(
                section=s.section,
                value=s.total,
                percent=(s.total / total * 100) if total else _ZERO,
            )
            for s in sections
            if s.total != 0
        )

        return ValuationSnapshot(
            timestamp=as_of or datetime.now(UTC),
            fx_rate=fx_rate,
            total=total,
            total_quote=total * fx_rate,
            change_24h=portfolio_change.value,
            sections=tuple(_by_value_desc(sections, lambda s: s.total)),
            allocation=allocation,
        )

    def calculate_line_item(
        self,
        holding: Holding,
        crypto_prices: Mapping[str, Decimal],
        crypto_changes: Mapping[str, Decimal],
        equity_quotes: Mapping[str, PriceQuote],
        fx_rate: Decimal,
    ) -> LineItem:
        """Calculate value for a single holding."""
        match holding:
            case CashHolding():
                return LineItem(
                    holding_id=holding.id,
                    category=holding.category,
                    symbol=holding.name,
                    quantity=holding.quantity,
                    location=holding.location,
                    price=None,
                    currency=self.quote_currency,
                    value_native=holding.quantity,
                    value=self.to_base(holding.quantity, self.quote_currency, fx_rate),
                    change_24h=None,
                    price_source="static",
                )
            case StablecoinHolding() | CryptoHolding():
                price = crypto_prices.get(holding.price_id)
                source = "quote"
                if price is None:
                    source = "default"
                    price = (
                        _STABLECOIN_DEFAULT_PRICE
                        if isinstance(holding, StablecoinHolding)
                        else _ZERO
                    )
                value = holding.quantity * price
                return LineItem(
                    holding_id=holding.id,
                    category=holding.category,
                    symbol=holding.symbol,
                    quantity=holding.quantity,
                    location=holding.location,
                    price=price,
                    currency=self.base_currency,
                    value_native=value,
                    value=value,
                    change_24h=crypto_changes.get(holding.price_id),
                    price_source=source,
                )
            case FundHolding() | EquityHolding():
                quote = equity_quotes.get(holding.symbol)
                if quote is not None:
                    price, currency, change, source = (
                        quote.price,
                        quote.currency.upper(),
                        quote.change_24h,
                        "quote",
                    )
                elif holding.static_price_base is not None:
                    price, currency, change, source = (
                        holding.static_price_base,
                        self.base_currency,
                        None,
                        "static",
                    )
                elif holding.static_price_quote is not None:
                    price, currency, change, source = (
                        holding.static_price_quote,
                        self.quote_currency,
                        None,
                        "static",
                    )
                else:
                    price, currency, change, source = _ZERO, self.base_currency, None, "default"

                value_native = holding.quantity * price
                return LineItem(
                    holding_id=holding.id,
                    category=holding.category,
                    symbol=holding.symbol,
                    quantity=holding.quantity,
                    location=holding.location,
                    price=price,
                    currency=currency,
                    value_native=value_native,
                    value=self.to_base(value_native, currency, fx_rate),
                    change_24h=change,
                    price_source=source,
                )
            case _:
                raise TypeError(f"Unsupported holding type: {type(holding).__name__}")

    def to_base(self, amount: Decimal, currency: str, fx_rate: Decimal) -> Decimal:
        """Convert an amount in one of the two supported currencies to the base currency."""
        if currency == self.quote_currency and currency != self.base_currency:
            return amount / fx_rate
        if currency != self.base_currency:
            logger.warning(f"Unsupported currency {currency}, treating as {self.base_currency}")
        return amount

    def _value_category(
        self, category: str, items: list[LineItem]
    ) -> tuple[CategoryValuation, WeightedChange]:
        # Cash balances are never merged; everything else groups by symbol
        grouped: dict[str, list[LineItem]] = {}
        for item in items:
            key = item.holding_id if category == HoldingCategory.CASH else item.symbol
            grouped.setdefault(key, []).append(item)

        category_change = WeightedChange()
        groups: list[SymbolGroup] = []
        for group_items in grouped.values():
            group_change = WeightedChange()
            for item in group_items:
                group_change.add(item.value, item.change_24h)
            category_change.merge(group_change)
            groups.append(
                SymbolGroup(
                    symbol=group_items[0].symbol,
                    total=sum((i.value for i in group_items), _ZERO),
                    change_24h=group_change.value,
                    items=tuple(_by_value_desc(group_items, lambda i: i.value)),
                )
            )

        native_totals: dict[str, Decimal] = {}
        for item in items:
            native_totals.setdefault(item.currency, _ZERO)
            native_totals[item.currency] += item.value_native

        valuation = CategoryValuation(
            category=category,
            total=sum((g.total for g in groups), _ZERO),
            change_24h=category_change.value,
            groups=tuple(_by_value_desc(groups, lambda g: g.total)),
            native_totals=native_totals,
        )
        return valuation, category_change
