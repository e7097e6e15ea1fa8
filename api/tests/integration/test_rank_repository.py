"""Integration tests for RankRepository and insert_or_ignore.

Tests cover:
- get_or_create creates one Beginner III row and reuses it
- compare_and_set succeeds on the current version and fails on a stale one
- list_learner_ids_without_rank
"""

import pytest
from sqlalchemy import func, select

from models import LearnerRank, RankTier
from repositories.rank_repository import RankRepository
from repositories.utils import insert_or_ignore
from tests.factories import LearnerFactory, create_async

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


class TestGetOrCreate:
    async def test_creates_starting_row(self, db_session):
        learner = await create_async(LearnerFactory, db_session)

        row = await RankRepository(db_session).get_or_create(learner.id)

        assert row.learner_id == learner.id
        assert row.rank is RankTier.BEGINNER_III
        assert row.total_sessions == 0
        assert row.progress == 0
        assert row.version == 0

    async def test_second_call_returns_same_row(self, db_session):
        learner = await create_async(LearnerFactory, db_session)
        repo = RankRepository(db_session)

        first = await repo.get_or_create(learner.id)
        second = await repo.get_or_create(learner.id)

        assert first.id == second.id
        count = await db_session.scalar(select(func.count(LearnerRank.id)))
        assert count == 1

    async def test_get_by_learner_id_missing(self, db_session):
        assert await RankRepository(db_session).get_by_learner_id(999) is None


class TestCompareAndSet:
    async def test_writes_on_current_version(self, db_session):
        learner = await create_async(LearnerFactory, db_session)
        repo = RankRepository(db_session)
        row = await repo.get_or_create(learner.id)

        written = await repo.compare_and_set(
            learner.id,
            expected_version=row.version,
            total_sessions=6,
            progress=1,
            rank=RankTier.BEGINNER_II,
        )

        assert written is True
        fresh = await repo.get_by_learner_id(learner.id)
        assert fresh.total_sessions == 6
        assert fresh.progress == 1
        assert fresh.rank is RankTier.BEGINNER_II
        assert fresh.version == 1

    async def test_stale_version_is_rejected(self, db_session):
        learner = await create_async(LearnerFactory, db_session)
        repo = RankRepository(db_session)
        await repo.get_or_create(learner.id)

        assert await repo.compare_and_set(
            learner.id,
            expected_version=0,
            total_sessions=1,
            progress=1,
            rank=RankTier.BEGINNER_III,
        )
        # A second writer that read version 0 loses
        assert not await repo.compare_and_set(
            learner.id,
            expected_version=0,
            total_sessions=1,
            progress=1,
            rank=RankTier.BEGINNER_III,
        )

        fresh = await repo.get_by_learner_id(learner.id)
        assert fresh.total_sessions == 1
        assert fresh.version == 1

    async def test_missing_row_is_not_written(self, db_session):
        written = await RankRepository(db_session).compare_and_set(
            404,
            expected_version=0,
            total_sessions=1,
            progress=1,
            rank=RankTier.BEGINNER_III,
        )
        assert written is False


class TestListLearnersWithoutRank:
    async def test_lists_only_unranked_learners(self, db_session):
        ranked = await create_async(LearnerFactory, db_session)
        unranked = await create_async(LearnerFactory, db_session)
        repo = RankRepository(db_session)
        await repo.get_or_create(ranked.id)

        assert await repo.list_learner_ids_without_rank() == [unranked.id]


class TestInsertOrIgnore:
    async def test_duplicate_unique_key_is_ignored(self, db_session):
        learner = await create_async(LearnerFactory, db_session)
        values = {
            "learner_id": learner.id,
            "total_sessions": 0,
            "progress": 0,
            "rank": RankTier.BEGINNER_III,
            "version": 0,
        }

        first = await insert_or_ignore(
            db_session, LearnerRank, values, index_elements=["learner_id"]
        )
        second = await insert_or_ignore(
            db_session, LearnerRank, values, index_elements=["learner_id"]
        )

        assert first is True
        assert second is False
        # Transaction is still usable after the conflict
        count = await db_session.scalar(select(func.count(LearnerRank.id)))
        assert count == 1
