"""Create starting rank rows for learners that have none.

Usage:
  python -m scripts.backfill_ranks
"""

from __future__ import annotations

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
from services.rank_service import backfill_missing_ranks

logger = get_logger(__name__)


async def run_backfill() -> int:
    engine = create_engine()
    session_maker = create_session_maker(engine)

    try:
        await init_db(engine)
        async with session_scope(session_maker) as session:
            created = await backfill_missing_ranks(session)
    finally:
        await dispose_engine(engine)

    logger.info("rank.backfill.complete", created=len(created))
    return len(created)


def main() -> None:
    configure_logging()
    asyncio.run(run_backfill())


if __name__ == "__main__":
    main()
