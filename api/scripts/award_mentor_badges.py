"""Re-run the badge award engine for one mentor or every mentor.

Useful after changing the catalog or importing historical data.

Usage:
  python -m scripts.award_mentor_badges
  python -m scripts.award_mentor_badges --mentor-id <id>
"""

from __future__ import annotations

import argparse
import asyncio

from core import get_logger
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
    session_scope,
)
from core.logger import configure_logging
from repositories.profile_repository import MentorRepository
from services.badges_service import award_mentor_badges

logger = get_logger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Award mentor badges")
    parser.add_argument("--mentor-id", type=int, help="Award for a single mentor")
    return parser.parse_args()


async def run_awards(mentor_id: int | None) -> int:
    """Returns the number of badges inserted across all mentors."""
    engine = create_engine()
    session_maker = create_session_maker(engine)
    inserted = 0

    try:
        await init_db(engine)
        if mentor_id is not None:
            mentor_ids = [mentor_id]
        else:
            async with session_maker() as session:
                mentor_ids = await MentorRepository(session).list_ids()

        # One transaction per mentor so a failure only loses that mentor
        for current_id in mentor_ids:
            try:
                async with session_scope(session_maker) as session:
                    result = await award_mentor_badges(session, current_id)
            except Exception:
                logger.exception("badges.backfill.mentor_failed", mentor_id=current_id)
                continue
            inserted += len(result.awarded)
    finally:
        await dispose_engine(engine)

    logger.info("badges.backfill.complete", mentors=len(mentor_ids), inserted=inserted)
    return inserted


def main() -> None:
    configure_logging()
    args = _parse_args()
    asyncio.run(run_awards(args.mentor_id))


if __name__ == "__main__":
    main()
