"""Command line entry point: run the periodic portfolio refresh."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from portfolio_tracker.config import settings
from portfolio_tracker.constants import HistoryWindow
from portfolio_tracker.database import create_db_engine, create_session_factory
from portfolio_tracker.schemas.holding import HoldingsValidationError
from portfolio_tracker.services.portfolio.portfolio_session import PortfolioSession
from portfolio_tracker.services.repositories.key_value_repository import SqlKeyValueStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Track a multi-asset portfolio with live prices and bounded history"
    )
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help=f"Key-value store database (default: {settings.database_url})",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.refresh_interval_seconds,
        help="Seconds between refresh cycles",
    )
    parser.add_argument(
        "--import",
        dest="import_path",
        type=Path,
        help="Replace the holdings with a JSON export before refreshing",
    )
    parser.add_argument("--once", action="store_true", help="Run a single refresh and exit")
    return parser.parse_args(argv)


def log_summary(session: PortfolioSession) -> None:
    valuation = session.valuation
    if valuation is None:
        logger.info("No valuation available yet")
        return

    logger.info(
        f"Portfolio: {valuation.total:.2f} {settings.base_currency} "
        f"({valuation.total_quote:.2f} {settings.quote_currency}), "
        f"24h {'n/a' if valuation.change_24h is None else f'{valuation.change_24h:+.2f}%'}"
    )
    for slice_ in valuation.allocation:
        logger.info(f"  {slice_.section:<10} {slice_.value:>12.2f} ({slice_.percent:.1f}%)")

    for section in valuation.sections:
        for category in section.categories:
            visible = category.visible_groups(settings.min_display_value)
            hidden = len(category.groups) - len(visible)
            if not visible:
                continue
            groups = ", ".join(f"{g.symbol} {g.total:.2f}" for g in visible)
            suffix = f" (+{hidden} below {settings.min_display_value})" if hidden else ""
            logger.info(f"  {category.category}: {groups}{suffix}")

    month = session.history_window(HistoryWindow.MONTH)
    logger.info(
        f"30d change: {month.change.value:+.2f} ({month.change.percent:+.2f}%) "
        f"over {len(month.points)} points"
    )


async def run(args: argparse.Namespace) -> int:
    engine = create_db_engine(args.database_url)
    store = SqlKeyValueStore(create_session_factory(engine))
    session = PortfolioSession.load(store)

    try:
        if args.import_path is not None:
            try:
                await session.import_holdings(args.import_path.read_text(encoding="utf-8"))
            except HoldingsValidationError as e:
                logger.error(f"Import rejected: {e} {e.errors}")
                return 1

        if args.once:
            # An import already ran a refresh cycle
            if args.import_path is None:
                await session.refresh()
            log_summary(session)
            return 0

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass

        periodic = asyncio.create_task(session.run_forever(args.interval, stop))
        while not periodic.done():
            await asyncio.wait({periodic}, timeout=args.interval)
            log_summary(session)
        return 0
    finally:
        await session.close()
        engine.dispose()
        logger.info("Session flushed")


def main(argv: list[str] | None = None) -> None:
    """Run the portfolio tracker."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = parse_args(argv)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
