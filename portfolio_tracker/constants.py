"""Application constants to avoid magic strings."""

from datetime import timedelta


class HoldingCategory:
    """Holding category tags."""

    CASH = "cash"
    STABLECOIN = "stablecoin"
    CRYPTO = "crypto"
    FUND = "fund"
    EQUITY = "equity"

    ALL = (CASH, STABLECOIN, CRYPTO, FUND, EQUITY)


class PortfolioSection:
    """Top-level sections used for allocation and history details."""

    LIQUIDITY = "liquidity"
    CRYPTO = "crypto"
    STOCKS = "stocks"

    ALL = (LIQUIDITY, CRYPTO, STOCKS)

    CATEGORIES = {
        LIQUIDITY: (HoldingCategory.CASH, HoldingCategory.STABLECOIN),
        CRYPTO: (HoldingCategory.CRYPTO,),
        STOCKS: (HoldingCategory.FUND, HoldingCategory.EQUITY),
    }


class Currency:
    """Supported currency constants."""

    USD = "USD"
    EUR = "EUR"


class HistoryWindow:
    """Chart windows over the history series."""

    DAY = "24h"
    MONTH = "30d"
    YEAR = "1y"
    ALL = "all"

    DURATIONS: dict[str, timedelta | None] = {
        DAY: timedelta(hours=24),
        MONTH: timedelta(days=30),
        YEAR: timedelta(days=365),
        ALL: None,
    }


class StorageKey:
    """Keys of the persisted key-value entries."""

    CONFIG = "config"
    PRICE_CACHE = "priceCache"
    HISTORY = "history"
