"""Value objects for portfolio valuation."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from portfolio_tracker.schemas.history import HistoryPoint


@dataclass(frozen=True)
class LineItem:
    """Calculated values for a single holding."""

    holding_id: str
    category: str
    symbol: str
    quantity: Decimal
    location: str | None

    # Native currency values
    price: Decimal | None
    currency: str
    value_native: Decimal

    # Base currency value
    value: Decimal
    change_24h: Decimal | None

    # "quote", "static" or "default"
    price_source: str = "quote"


@dataclass(frozen=True)
class SymbolGroup:
    """Line items sharing a symbol within one category."""

    symbol: str
    total: Decimal
    change_24h: Decimal | None
    items: tuple[LineItem, ...]


@dataclass(frozen=True)
class CategoryValuation:
    """Totals for one holding category."""

    category: str
    total: Decimal
    change_24h: Decimal | None
    groups: tuple[SymbolGroup, ...]
    native_totals: dict[str, Decimal] = field(default_factory=dict)

    def visible_groups(self, min_value: Decimal) -> tuple[SymbolGroup, ...]:
        """Groups worth at least ``min_value``; display only, totals are unaffected."""
        return tuple(group for group in self.groups if group.total >= min_value)


@dataclass(frozen=True)
class SectionValuation:
    """Totals for one top-level section (liquidity, crypto, stocks)."""

    section: str
    total: Decimal
    change_24h: Decimal | None
    categories: tuple[CategoryValuation, ...]


@dataclass(frozen=True)
class AllocationSlice:
    """Share of the portfolio held in one section."""

    section: str
    value: Decimal
    percent: Decimal


@dataclass(frozen=True)
class ValuationSnapshot:
    """Fully computed valuation tree for one refresh cycle."""

    timestamp: datetime
    fx_rate: Decimal
    total: Decimal
    total_quote: Decimal
    change_24h: Decimal | None
    sections: tuple[SectionValuation, ...]
    allocation: tuple[AllocationSlice, ...]

    def section(self, name: str) -> SectionValuation:
        return next(s for s in self.sections if s.section == name)

    def category(self, name: str) -> CategoryValuation:
        return next(c for s in self.sections for c in s.categories if c.category == name)

    @property
    def section_totals(self) -> dict[str, Decimal]:
        return {s.section: s.total for s in self.sections}

    @property
    def section_changes(self) -> dict[str, Decimal | None]:
        return {s.section: s.change_24h for s in self.sections}

    def to_history_point(self) -> HistoryPoint:
        return HistoryPoint(timestamp=self.timestamp, value=self.total, details=self.section_totals)
