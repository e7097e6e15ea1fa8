"""Tests for services.badges_service.

Tests cover:
- compute_mentor_metrics assembles every metric from source tables
- award_mentor_badges inserts earned badges once (idempotent)
- Awards are never revoked when metrics drop
- Lost insert races are reported as already held
- Unknown mentors and failed aggregations are skipped, not raised
- get_mentor_badges caching and invalidation on award
- resolve_mentor_id
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
import time_machine
from sqlalchemy.exc import OperationalError

from core.cache import get_cached_mentor_badges, set_cached_mentor_badges
from models import SessionType
from repositories.badge_repository import MentorBadgeRepository
from repositories.mentor_metrics_repository import MentorMetricsRepository
from services.badges_service import (
    award_mentor_badges,
    compute_mentor_metrics,
    get_mentor_badges,
    resolve_mentor_id,
)
from tests.factories import (
    FeedbackFactory,
    ForumPostFactory,
    LearnerFactory,
    MentorFactory,
    ScheduleFactory,
    create_async,
)

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


async def _add_sessions(db, mentor, count, *, session_type=SessionType.ONE_ON_ONE):
    learner = await create_async(LearnerFactory, db)
    schedules = []
    for _ in range(count):
        schedules.append(
            await create_async(
                ScheduleFactory,
                db,
                mentor_id=mentor.id,
                session_type=session_type,
                learners=[learner],
            )
        )
    return learner, schedules


class TestComputeMentorMetrics:
    async def test_unknown_mentor(self, db_session):
        assert await compute_mentor_metrics(db_session, 404) is None

    async def test_full_snapshot(self, db_session):
        mentor = await create_async(
            MentorFactory,
            db_session,
            verified=True,
            credentials=["cert.pdf", "degree.pdf"],
            credentials_folder_url="https://drive.example.com/folder",
        )
        learner, schedules = await _add_sessions(db_session, mentor, 3)
        for rating in (5, 4, 4):
            await create_async(
                FeedbackFactory,
                db_session,
                schedule_id=schedules[0].id,
                mentor_id=mentor.id,
                learner_id=learner.id,
                rating=rating,
            )
        await create_async(ForumPostFactory, db_session, author_user_id=mentor.user_id)

        metrics = await compute_mentor_metrics(db_session, mentor.id)

        assert metrics.sessions_completed == 3
        assert metrics.group_sessions_hosted == 0
        assert metrics.unique_learners == 1
        assert metrics.avg_rating == 4.333
        assert metrics.ratings_count == 3
        assert metrics.five_star_count == 1
        assert metrics.forum_posts == 1
        assert metrics.is_verified is True
        assert metrics.credentials_count == 2
        assert metrics.has_credentials_folder is True

    async def test_mentor_without_user_id_has_no_forum_activity(self, db_session):
        mentor = await create_async(MentorFactory, db_session, user_id=None)

        with patch.object(
            MentorMetricsRepository, "get_forum_activity", new_callable=AsyncMock
        ) as forum:
            metrics = await compute_mentor_metrics(db_session, mentor.id)

        forum.assert_not_called()
        assert metrics.forum_posts == 0
        assert metrics.forum_upvotes == 0


class TestAwardMentorBadges:
    async def test_awards_first_session(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        await _add_sessions(db_session, mentor, 1)

        result = await award_mentor_badges(db_session, mentor.id)

        assert result.skipped is False
        assert [badge.badge_key for badge in result.awarded] == ["first_session"]
        assert result.already_had == []
        assert result.metrics.sessions_completed == 1

    async def test_awarded_at_is_award_time(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)
        frozen = datetime(2026, 5, 4, 12, 30, tzinfo=UTC)

        with time_machine.travel(frozen, tick=False):
            result = await award_mentor_badges(db_session, mentor.id)

        assert result.awarded[0].awarded_at == frozen

    async def test_no_activity_awards_nothing(self, db_session):
        mentor = await create_async(MentorFactory, db_session)

        result = await award_mentor_badges(db_session, mentor.id)

        assert result.awarded == []
        assert result.already_had == []
        assert await MentorBadgeRepository(db_session).get_keys(mentor.id) == set()

    async def test_repeat_call_is_idempotent(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)
        await _add_sessions(db_session, mentor, 10)

        first = await award_mentor_badges(db_session, mentor.id)
        second = await award_mentor_badges(db_session, mentor.id)

        assert {b.badge_key for b in first.awarded} == {
            "first_session",
            "ten_sessions",
            "verified_mentor",
        }
        assert second.awarded == []
        assert second.already_had == ["first_session", "ten_sessions", "verified_mentor"]
        rows = await MentorBadgeRepository(db_session).list_for_mentor(mentor.id)
        assert len(rows) == 3

    async def test_new_threshold_awards_only_new_badge(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        await _add_sessions(db_session, mentor, 9)
        await award_mentor_badges(db_session, mentor.id)

        await _add_sessions(db_session, mentor, 1)
        result = await award_mentor_badges(db_session, mentor.id)

        assert [b.badge_key for b in result.awarded] == ["ten_sessions"]
        assert result.already_had == ["first_session"]

    async def test_badges_are_never_revoked(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)
        await award_mentor_badges(db_session, mentor.id)

        mentor.verified = False
        await db_session.flush()
        result = await award_mentor_badges(db_session, mentor.id)

        assert result.metrics.is_verified is False
        assert result.awarded == []
        assert result.already_had == ["verified_mentor"]
        assert await MentorBadgeRepository(db_session).get_keys(mentor.id) == {
            "verified_mentor"
        }

    async def test_snapshot_stored_with_badge(self, db_session):
        mentor = await create_async(
            MentorFactory, db_session, credentials_folder_url="https://x.example/f"
        )

        await award_mentor_badges(db_session, mentor.id)

        rows = await MentorBadgeRepository(db_session).list_for_mentor(mentor.id)
        assert rows[0].badge_key == "credentialed"
        assert rows[0].metrics_snapshot["has_credentials_folder"] is True
        assert rows[0].metrics_snapshot["credentials_count"] == 0

    async def test_lost_insert_race_reported_as_already_had(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        await _add_sessions(db_session, mentor, 1)
        # Another award pass inserted the badge after this one read held keys
        await MentorBadgeRepository(db_session).add_if_absent(
            mentor.id,
            "first_session",
            awarded_at=datetime.now(UTC),
            metrics_snapshot={},
        )

        with patch.object(
            MentorBadgeRepository, "get_keys", AsyncMock(return_value=set())
        ):
            result = await award_mentor_badges(db_session, mentor.id)

        assert result.awarded == []
        assert result.already_had == ["first_session"]

    async def test_unknown_mentor_is_skipped(self, db_session):
        result = await award_mentor_badges(db_session, 404)

        assert result.skipped is True
        assert result.awarded == []
        assert result.metrics is None

    async def test_aggregation_failure_is_skipped(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)
        mentor_id = mentor.id

        with patch.object(
            MentorMetricsRepository,
            "get_session_counts",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone"))),
        ):
            result = await award_mentor_badges(db_session, mentor_id)

        assert result.skipped is True
        assert result.mentor_id == mentor_id

        # The surrounding transaction keeps working after the failed read
        repo = MentorBadgeRepository(db_session)
        assert await repo.add_if_absent(
            mentor_id,
            "verified_mentor",
            awarded_at=datetime(2026, 1, 5, tzinfo=UTC),
            metrics_snapshot={},
        )
        assert await repo.get_keys(mentor_id) == {"verified_mentor"}

    async def test_held_badge_read_failure_is_skipped(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        mentor_id = mentor.id

        with patch.object(
            MentorBadgeRepository,
            "get_keys",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone"))),
        ):
            result = await award_mentor_badges(db_session, mentor_id)

        assert result.skipped is True
        assert result.awarded == []

    async def test_insert_failure_propagates(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)

        with patch.object(
            MentorBadgeRepository,
            "add_if_absent",
            AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("gone"))),
        ):
            with pytest.raises(OperationalError):
                await award_mentor_badges(db_session, mentor.id)


class TestGetMentorBadges:
    async def test_empty(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        assert await get_mentor_badges(db_session, mentor.id) == []

    async def test_includes_definition(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)
        await award_mentor_badges(db_session, mentor.id)

        badges = await get_mentor_badges(db_session, mentor.id)

        assert len(badges) == 1
        assert badges[0].definition.name == "Verified Mentor"

    async def test_served_from_cache(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        set_cached_mentor_badges(mentor.id, [])

        with patch.object(
            MentorBadgeRepository, "list_for_mentor", new_callable=AsyncMock
        ) as list_for_mentor:
            assert await get_mentor_badges(db_session, mentor.id) == []

        list_for_mentor.assert_not_called()

    async def test_award_invalidates_cache(self, db_session):
        mentor = await create_async(MentorFactory, db_session, verified=True)
        assert await get_mentor_badges(db_session, mentor.id) == []
        assert get_cached_mentor_badges(mentor.id) == []

        await award_mentor_badges(db_session, mentor.id)

        assert get_cached_mentor_badges(mentor.id) is None
        badges = await get_mentor_badges(db_session, mentor.id)
        assert [b.badge_key for b in badges] == ["verified_mentor"]

    async def test_unknown_badge_key_has_no_definition(self, db_session):
        mentor = await create_async(MentorFactory, db_session)
        await MentorBadgeRepository(db_session).add_if_absent(
            mentor.id,
            "retired_badge",
            awarded_at=datetime.now(UTC),
            metrics_snapshot={},
        )

        badges = await get_mentor_badges(db_session, mentor.id)

        assert badges[0].badge_key == "retired_badge"
        assert badges[0].definition is None


class TestResolveMentorId:
    async def test_by_id_and_user_id(self, db_session):
        mentor = await create_async(MentorFactory, db_session, user_id="clerk_1")

        assert await resolve_mentor_id(db_session, mentor.id) == mentor.id
        assert await resolve_mentor_id(db_session, "clerk_1") == mentor.id

    @pytest.mark.parametrize("value", [None, "", "missing"])
    async def test_unresolvable(self, db_session, value):
        assert await resolve_mentor_id(db_session, value) is None
