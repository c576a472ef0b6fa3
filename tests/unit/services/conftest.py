"""Fixtures for service unit tests."""

from datetime import timedelta
from decimal import Decimal

import pytest

from portfolio_tracker.schemas.history import HistoryPoint
from portfolio_tracker.services.portfolio.valuation_service import PortfolioValuationService
from tests.conftest import FIXED_NOW


def point_at(age: timedelta, value: str | int = 1000) -> HistoryPoint:
    """History point ``age`` before the fixed test clock."""
    return HistoryPoint(timestamp=FIXED_NOW - age, value=Decimal(value))


@pytest.fixture
def service() -> PortfolioValuationService:
    return PortfolioValuationService(base_currency="USD", quote_currency="EUR")
