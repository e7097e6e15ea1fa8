"""Repository for learner rank state."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Learner, LearnerRank, RankTier, utcnow
from repositories.utils import insert_or_ignore, log_slow_query


class RankRepository:
    """Repository for LearnerRank database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("get_rank_by_learner")
    async def get_by_learner_id(self, learner_id: int) -> LearnerRank | None:
        """Get the rank row for a learner, bypassing any stale identity-map copy.

        populate_existing matters after compare_and_set, which updates the row
        without touching the ORM object.
        """
        result = await self.db.execute(
            select(LearnerRank)
            .where(LearnerRank.learner_id == learner_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @log_slow_query("get_or_create_rank")
    async def get_or_create(self, learner_id: int) -> LearnerRank:
        """Get the learner's rank row, creating a Beginner III row if missing.

        Concurrent first-time callers both end up with the same single row.
        """
        rank = await self.get_by_learner_id(learner_id)
        if rank:
            return rank

        await insert_or_ignore(
            self.db,
            LearnerRank,
            {
                "learner_id": learner_id,
                "total_sessions": 0,
                "progress": 0,
                "rank": RankTier.BEGINNER_III,
                "version": 0,
            },
            index_elements=["learner_id"],
        )

        rank = await self.get_by_learner_id(learner_id)
        assert rank is not None
        return rank

    @log_slow_query("compare_and_set_rank")
    async def compare_and_set(
        self,
        learner_id: int,
        *,
        expected_version: int,
        total_sessions: int,
        progress: int,
        rank: RankTier,
    ) -> bool:
        """Write new rank fields only if nobody else wrote since expected_version.

        Returns False when the row moved on (or vanished); the caller should
        re-read and recompute.
        """
        result = await self.db.execute(
            update(LearnerRank)
            .where(
                LearnerRank.learner_id == learner_id,
                LearnerRank.version == expected_version,
            )
            .values(
                total_sessions=total_sessions,
                progress=progress,
                rank=rank,
                version=expected_version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @log_slow_query("list_learners_without_rank")
    async def list_learner_ids_without_rank(self) -> list[int]:
        """IDs of learners that have no rank row yet (for backfills)."""
        result = await self.db.execute(
            select(Learner.id)
            .outerjoin(LearnerRank, LearnerRank.learner_id == Learner.id)
            .where(LearnerRank.id.is_(None))
            .order_by(Learner.id)
        )
        return list(result.scalars().all())
