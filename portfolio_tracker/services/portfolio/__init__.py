"""Portfolio services.

Handles valuation, the history series and the refresh-cycle session.
"""

from .history_store import HistoryStore, compact, period_change, query_window
from .portfolio_session import PortfolioSession
from .valuation_service import PortfolioValuationService, WeightedChange, weighted_change
from .valuation_types import (
    AllocationSlice,
    CategoryValuation,
    LineItem,
    SectionValuation,
    SymbolGroup,
    ValuationSnapshot,
)

__all__ = [
    "AllocationSlice",
    "CategoryValuation",
    "HistoryStore",
    "LineItem",
    "PortfolioSession",
    "PortfolioValuationService",
    "SectionValuation",
    "SymbolGroup",
    "ValuationSnapshot",
    "WeightedChange",
    "compact",
    "period_change",
    "query_window",
    "weighted_change",
]
