"""Pydantic schemas for holdings, quotes and history."""

from .history import HistoryPoint, HistorySeriesAdapter, HistoryWindowResult, PeriodChange
from .holding import (
    CashHolding,
    CryptoHolding,
    EquityHolding,
    FundHolding,
    Holding,
    HoldingsConfig,
    HoldingsValidationError,
    StablecoinHolding,
    parse_holding,
    parse_holdings_payload,
)
from .price import PriceCache, PriceQuote

__all__ = [
    "CashHolding",
    "CryptoHolding",
    "EquityHolding",
    "FundHolding",
    "HistoryPoint",
    "HistorySeriesAdapter",
    "HistoryWindowResult",
    "Holding",
    "HoldingsConfig",
    "HoldingsValidationError",
    "PeriodChange",
    "PriceCache",
    "PriceQuote",
    "StablecoinHolding",
    "parse_holding",
    "parse_holdings_payload",
]
