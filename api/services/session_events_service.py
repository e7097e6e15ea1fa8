"""Gamification side effects of session lifecycle events.

Called by the feedback handler after a learner's feedback for a schedule
has been written. Rank progress only counts *qualifying* sessions: the
schedule's subject must be one of the learner's declared subjects.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger
from repositories.profile_repository import LearnerRepository
from schemas import RankSummary
from services.rank_service import (
    InvalidSessionCountError,
    RankWriteConflictError,
    add_sessions,
)

logger = get_logger(__name__)


def _normalize_subject(subject: object) -> str:
    return str(subject or "").strip().casefold()


def is_qualifying_session(
    learner_subjects: list[str] | None, schedule_subject: str | None
) -> bool:
    """True if the schedule subject matches one of the learner's subjects.

    Comparison ignores surrounding whitespace and case. An empty schedule
    subject never qualifies.
    """
    subject = _normalize_subject(schedule_subject)
    if not subject:
        return False
    return subject in {_normalize_subject(s) for s in learner_subjects or []}


async def record_feedback_received(
    db: AsyncSession,
    learner_id: int,
    schedule_id: int,
) -> RankSummary | None:
    """Advance the learner's rank by one session if the schedule qualifies.

    Never raises: the feedback itself has already been accepted, so a rank
    failure is logged and the rank update is rolled back on its own
    savepoint. Returns the new rank summary, or None when nothing changed.
    """
    repo = LearnerRepository(db)
    learner = await repo.get_by_id(learner_id)
    schedule = await repo.get_schedule(schedule_id)
    if learner is None or schedule is None:
        logger.info(
            "rank.feedback.unresolved",
            learner_id=learner_id,
            schedule_id=schedule_id,
        )
        return None

    if not is_qualifying_session(learner.subjects, schedule.subject):
        logger.debug(
            "rank.feedback.not_qualifying",
            learner_id=learner_id,
            schedule_id=schedule_id,
        )
        return None

    try:
        async with db.begin_nested():
            return await add_sessions(db, learner_id, 1)
    except (InvalidSessionCountError, RankWriteConflictError, SQLAlchemyError):
        logger.exception(
            "rank.update.failed",
            learner_id=learner_id,
            schedule_id=schedule_id,
        )
        return None
