"""Command-line entry point.

Usage:
    python -m polymarket_copy_signals [run]        # scheduler (default)
    python -m polymarket_copy_signals tick         # one tracker pass
    python -m polymarket_copy_signals leaderboard  # one leaderboard ingestion
    python -m polymarket_copy_signals summary      # send the daily summary now
    python -m polymarket_copy_signals init-db      # create the schema
    python -m polymarket_copy_signals unpause      # bulk-unpause recovered wallets
    python -m polymarket_copy_signals picks <id>   # show a wallet's live picks
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from polymarket_copy_signals import __version__
from polymarket_copy_signals.config import Settings, get_settings
from polymarket_copy_signals.pipeline import TrackerPipeline
from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.repos import LivePickRepository, WalletRepository

logger = logging.getLogger("polymarket_copy_signals")

EXIT_OK = 0
EXIT_STARTUP_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket-copy-signals",
        description="Polymarket copy-trading signal tracker",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="log signals and summaries instead of sending them",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="run the scheduler until interrupted")
    sub.add_parser("tick", help="run one tracker pass and exit")
    sub.add_parser("leaderboard", help="ingest leaderboard wallets once")
    sub.add_parser("summary", help="send the daily summary now")
    sub.add_parser("init-db", help="create database tables")
    sub.add_parser("unpause", help="unpause wallets whose win rate recovered")
    picks = sub.add_parser("picks", help="print a wallet's live picks")
    picks.add_argument("wallet_id", type=int)
    return parser


def _db_manager(settings: Settings) -> DatabaseManager:
    return DatabaseManager.from_settings(settings.database)


async def _init_db(settings: Settings) -> int:
    db = _db_manager(settings)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()
    return EXIT_OK


async def _unpause(settings: Settings) -> int:
    db = _db_manager(settings)
    try:
        async with db.get_async_session() as session:
            count = await WalletRepository(session).bulk_unpause(settings.tracker.win_rate_threshold)
    finally:
        await db.dispose_async()
    logger.info("Bulk unpaused %d wallets over threshold", count)
    return EXIT_OK


async def _picks(settings: Settings, wallet_id: int) -> int:
    db = _db_manager(settings)
    try:
        async with db.get_async_session() as session:
            rows = await LivePickRepository(session).list_for_wallet(wallet_id)
    finally:
        await db.dispose_async()
    if not rows:
        print(f"No live picks for wallet {wallet_id}")
    for row in rows:
        print(f"{row.vote_count:>4}  {row.picked_outcome:<20}  {row.market_name or row.market_slug}")
    return EXIT_OK


async def _run_command(settings: Settings, args: argparse.Namespace) -> int:
    command = args.command or "run"
    if command == "init-db":
        return await _init_db(settings)
    if command == "unpause":
        return await _unpause(settings)
    if command == "picks":
        return await _picks(settings, args.wallet_id)

    dry_run = True if args.dry_run else None
    pipeline = TrackerPipeline(settings, dry_run=dry_run)
    if command == "run":
        await pipeline.run()
        return EXIT_OK

    try:
        await pipeline.initialize()
        if command == "tick":
            await pipeline.run_tick()
        elif command == "leaderboard":
            await pipeline.run_leaderboard()
        elif command == "summary":
            await pipeline.run_summary()
    finally:
        await pipeline.close()
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    try:
        settings = get_settings()
        settings.validate_requirements(command=command)
    except (ValidationError, ValueError) as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Invalid configuration: %s", e)
        return EXIT_STARTUP_ERROR

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Polymarket copy-signal tracker %s starting (%s)", __version__, command)
    logger.info("Settings: %s", settings.redacted_summary())

    try:
        return asyncio.run(_run_command(settings, args))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database unavailable: %s", e)
        return EXIT_STARTUP_ERROR
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
