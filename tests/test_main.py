"""Tests for the command line entry point."""

import asyncio
import logging
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from portfolio_tracker import main as cli
from portfolio_tracker.config import settings
from portfolio_tracker.schemas.holding import HoldingsValidationError
from portfolio_tracker.services.portfolio.history_store import HistoryStore
from portfolio_tracker.services.portfolio.valuation_service import PortfolioValuationService
from tests.conftest import FIXED_NOW


def fake_session() -> MagicMock:
    session = MagicMock()
    session.refresh = AsyncMock()
    session.close = AsyncMock()
    session.import_holdings = AsyncMock()
    session.valuation = None
    return session


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults_from_settings(self):
        """Unset options fall back to settings."""
        args = cli.parse_args([])

        assert args.database_url == settings.database_url
        assert args.interval == settings.refresh_interval_seconds
        assert args.import_path is None
        assert args.once is False

    def test_options(self):
        """Explicit options are parsed."""
        args = cli.parse_args(
            [
                "--once",
                "--interval",
                "60",
                "--import",
                "holdings.json",
                "--database-url",
                "sqlite://",
            ]
        )

        assert args.once is True
        assert args.interval == 60.0
        assert args.import_path == Path("holdings.json")
        assert args.database_url == "sqlite://"


class TestRun:
    """Tests for run()."""

    def test_once_refreshes_and_closes(self):
        """--once runs a single refresh then flushes the session."""
        session = fake_session()
        args = cli.parse_args(["--once", "--database-url", "sqlite:///:memory:"])

        with patch.object(cli.PortfolioSession, "load", return_value=session):
            exit_code = asyncio.run(cli.run(args))

        assert exit_code == 0
        session.refresh.assert_awaited_once()
        session.close.assert_awaited_once()

    def test_import_with_once_refreshes_once(self, tmp_path):
        """The refresh run by the import is the only cycle."""
        payload = tmp_path / "holdings.json"
        payload.write_text('{"cash": []}', encoding="utf-8")
        session = fake_session()
        args = cli.parse_args(
            ["--once", "--import", str(payload), "--database-url", "sqlite:///:memory:"]
        )

        with patch.object(cli.PortfolioSession, "load", return_value=session):
            exit_code = asyncio.run(cli.run(args))

        assert exit_code == 0
        session.import_holdings.assert_awaited_once_with('{"cash": []}')
        session.refresh.assert_not_called()
        session.close.assert_awaited_once()

    def test_rejected_import_exits_nonzero(self, tmp_path):
        """An invalid import file stops before any refresh."""
        payload = tmp_path / "holdings.json"
        payload.write_text("{not json", encoding="utf-8")
        session = fake_session()
        session.import_holdings.side_effect = HoldingsValidationError("Invalid JSON")
        args = cli.parse_args(
            ["--once", "--import", str(payload), "--database-url", "sqlite:///:memory:"]
        )

        with patch.object(cli.PortfolioSession, "load", return_value=session):
            exit_code = asyncio.run(cli.run(args))

        assert exit_code == 1
        session.import_holdings.assert_awaited_once_with("{not json")
        session.refresh.assert_not_called()
        session.close.assert_awaited_once()


class TestLogSummary:
    """Tests for the per-cycle summary."""

    def test_hides_small_groups(self, holdings, caplog):
        """Groups under the display threshold are counted, not listed."""
        session = fake_session()
        session.valuation = PortfolioValuationService("USD", "EUR").compute_valuation(
            holdings,
            crypto_prices={
                "usd-coin": Decimal(1),
                "bitcoin": Decimal(100),
                "ethereum": Decimal(3000),
            },
            crypto_changes={},
            equity_quotes={},
            fx_rate=Decimal("0.9"),
            as_of=FIXED_NOW,
        )
        session.history_window.return_value = HistoryStore().window("30d", now=FIXED_NOW)

        with caplog.at_level(logging.INFO, logger="portfolio_tracker.main"):
            cli.log_summary(session)

        crypto_line = next(r.message for r in caplog.records if r.message.startswith("  crypto:"))
        assert "ETH 1500.00" in crypto_line
        assert "BTC" not in crypto_line
        assert "(+1 below 10)" in crypto_line
