"""Learner and mentor profile lookups used by the engines."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Learner, Mentor, Schedule
from repositories.utils import log_slow_query


class LearnerRepository:
    """Repository for Learner lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("get_learner_by_id")
    async def get_by_id(self, learner_id: int) -> Learner | None:
        result = await self.db.execute(select(Learner).where(Learner.id == learner_id))
        return result.scalar_one_or_none()

    @log_slow_query("get_schedule_by_id")
    async def get_schedule(self, schedule_id: int) -> Schedule | None:
        result = await self.db.execute(
            select(Schedule).where(Schedule.id == schedule_id)
        )
        return result.scalar_one_or_none()


class MentorRepository:
    """Repository for Mentor lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("get_mentor_by_id")
    async def get_by_id(self, mentor_id: int) -> Mentor | None:
        result = await self.db.execute(select(Mentor).where(Mentor.id == mentor_id))
        return result.scalar_one_or_none()

    @log_slow_query("find_mentor_by_id_or_user")
    async def find_by_id_or_user_id(self, mentor_or_user_id: int | str) -> Mentor | None:
        """Resolve either a mentor primary key or the mentor's user_id.

        Callers often only hold the authenticated user's id, so both are
        accepted. Numeric input is matched against the primary key first and
        only falls back to user_id when no mentor has that id.
        """
        if isinstance(mentor_or_user_id, int) or str(mentor_or_user_id).isdigit():
            mentor = await self.get_by_id(int(mentor_or_user_id))
            if mentor is not None:
                return mentor

        result = await self.db.execute(
            select(Mentor)
            .where(Mentor.user_id == str(mentor_or_user_id))
            .order_by(Mentor.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @log_slow_query("list_mentor_ids")
    async def list_ids(self) -> list[int]:
        result = await self.db.execute(select(Mentor.id).order_by(Mentor.id))
        return list(result.scalars().all())
