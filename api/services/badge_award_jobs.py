"""Background badge award jobs.

Almost every mentor-facing action (schedule created/cancelled/rescheduled,
feedback received, offer sent, files uploaded, profile viewed) should
re-run the award engine, but none of them may wait for it or fail because
of it. Each job runs in its own task with its own session and transaction;
failures are logged and dropped.

Tasks are tracked here so they are not garbage-collected mid-flight and
can be drained on shutdown.
"""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import bind_contextvars, get_logger
from core.database import session_scope
from schemas import BadgeAwardResult
from services.badges_service import award_mentor_badges, resolve_mentor_id

logger = get_logger(__name__)

_pending_jobs: set[asyncio.Task[BadgeAwardResult | None]] = set()


async def award_badges_best_effort(
    session_maker: async_sessionmaker[AsyncSession],
    mentor_or_user_id: int | str | None,
) -> BadgeAwardResult | None:
    """Resolve the mentor and award badges, swallowing every error.

    Returns None when the id does not resolve to a mentor or the job failed.
    """
    # Runs inside its own task, so the binding does not leak to the caller
    bind_contextvars(badge_job_target=str(mentor_or_user_id))
    try:
        async with session_scope(session_maker) as db:
            mentor_id = await resolve_mentor_id(db, mentor_or_user_id)
            if mentor_id is None:
                logger.info("badges.award_job.mentor_not_found")
                return None
            return await award_mentor_badges(db, mentor_id)
    except Exception:
        logger.exception("badges.award_job.failed")
        return None


def schedule_badge_award(
    session_maker: async_sessionmaker[AsyncSession],
    mentor_or_user_id: int | str | None,
) -> asyncio.Task[BadgeAwardResult | None]:
    """Start a background award pass and return immediately.

    Must be called from a running event loop.
    """
    task = asyncio.create_task(
        award_badges_best_effort(session_maker, mentor_or_user_id),
        name=f"badge-award:{mentor_or_user_id}",
    )
    _pending_jobs.add(task)
    task.add_done_callback(_pending_jobs.discard)
    return task


def pending_badge_award_jobs() -> int:
    return len(_pending_jobs)


async def drain_badge_award_jobs(timeout: float | None = None) -> None:
    """Wait for in-flight award jobs (shutdown hooks, scripts, tests)."""
    if not _pending_jobs:
        return
    done, pending = await asyncio.wait(set(_pending_jobs), timeout=timeout)
    if pending:
        logger.warning("badges.award_jobs.drain_timeout", still_running=len(pending))
