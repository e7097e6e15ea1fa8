#!/usr/bin/env python3
"""CLI for MindMate gamification maintenance tasks.

Usage:
    python -m cli <command>

Commands:
    migrate         Run database migrations
    backfill-ranks  Create starting rank rows for learners without one
    award-badges    Re-run the badge award engine for one or all mentors
"""

import argparse
import asyncio
import sys
from pathlib import Path

from core import get_logger
from core.logger import configure_logging

logger = get_logger(__name__)


def cmd_migrate() -> int:
    """Run database migrations."""
    from alembic import command
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Absolute so it works from any working directory
    cfg.set_main_option("script_location", str(api_dir / "alembic"))

    logger.info("migrations.running")
    command.upgrade(cfg, "head")
    logger.info("migrations.complete")
    return 0


def cmd_backfill_ranks() -> int:
    from scripts.backfill_ranks import run_backfill

    asyncio.run(run_backfill())
    return 0


def cmd_award_badges(mentor_id: int | None) -> int:
    from scripts.award_mentor_badges import run_awards

    asyncio.run(run_awards(mentor_id))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="MindMate gamification CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("migrate", help="Run database migrations")
    subparsers.add_parser(
        "backfill-ranks",
        help="Create starting rank rows for learners without one",
    )
    award = subparsers.add_parser(
        "award-badges",
        help="Re-run the badge award engine",
    )
    award.add_argument("--mentor-id", type=int, help="Only this mentor")

    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "migrate":
        return cmd_migrate()
    elif args.command == "backfill-ranks":
        return cmd_backfill_ranks()
    elif args.command == "award-badges":
        return cmd_award_badges(args.mentor_id)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
