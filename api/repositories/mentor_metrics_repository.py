"""Aggregate queries behind the mentor badge metrics.

Each method is a single round-trip returning plain counts; the service
layer assembles them into a MentorMetrics snapshot. Nothing here writes.
"""

from typing import NamedTuple

from sqlalchemy import and_, case, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    Feedback,
    ForumComment,
    ForumMetrics,
    ForumPost,
    ForumTarget,
    Schedule,
    SessionType,
    schedule_learners,
)
from repositories.utils import log_slow_query

FIVE_STAR_RATING = 5


class SessionCounts(NamedTuple):
    sessions: int
    group_sessions: int
    unique_learners: int


class RatingStats(NamedTuple):
    avg_rating: float
    ratings_count: int
    five_star_count: int


class ForumActivity(NamedTuple):
    posts: int
    comments: int
    upvotes: int


class MentorMetricsRepository:
    """Read-only aggregates over schedules, feedback, and the forum."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("mentor_session_counts")
    async def get_session_counts(self, mentor_id: int) -> SessionCounts:
        totals = await self.db.execute(
            select(
                func.count(Schedule.id),
                func.coalesce(
                    func.sum(case((Schedule.session_type == SessionType.GROUP, 1), else_=0)),
                    0,
                ),
            ).where(Schedule.mentor_id == mentor_id)
        )
        sessions, group_sessions = totals.one()

        learners = await self.db.execute(
            select(func.count(distinct(schedule_learners.c.learner_id)))
            .select_from(schedule_learners)
            .join(Schedule, Schedule.id == schedule_learners.c.schedule_id)
            .where(Schedule.mentor_id == mentor_id)
        )

        return SessionCounts(
            sessions=int(sessions or 0),
            group_sessions=int(group_sessions or 0),
            unique_learners=int(learners.scalar_one() or 0),
        )

    @log_slow_query("mentor_rating_stats")
    async def get_rating_stats(self, mentor_id: int) -> RatingStats:
        result = await self.db.execute(
            select(
                func.avg(Feedback.rating),
                func.count(Feedback.id),
                func.coalesce(
                    func.sum(case((Feedback.rating == FIVE_STAR_RATING, 1), else_=0)),
                    0,
                ),
            ).where(Feedback.mentor_id == mentor_id)
        )
        avg_rating, ratings_count, five_star_count = result.one()

        return RatingStats(
            avg_rating=float(avg_rating or 0.0),
            ratings_count=int(ratings_count or 0),
            five_star_count=int(five_star_count or 0),
        )

    @log_slow_query("mentor_forum_activity")
    async def get_forum_activity(self, user_id: str) -> ForumActivity:
        """Posts, comments, and upvotes received for content by `user_id`.

        Downvotes are deliberately not subtracted.
        """
        post_ids = select(ForumPost.id).where(ForumPost.author_user_id == user_id)
        comment_ids = select(ForumComment.id).where(
            ForumComment.author_user_id == user_id
        )

        counts = await self.db.execute(
            select(
                select(func.count()).select_from(post_ids.subquery()).scalar_subquery(),
                select(func.count())
                .select_from(comment_ids.subquery())
                .scalar_subquery(),
            )
        )
        posts, comments = counts.one()

        upvotes = await self.db.execute(
            select(func.coalesce(func.sum(ForumMetrics.upvote), 0)).where(
                or_(
                    and_(
                        ForumMetrics.on_model == ForumTarget.POST,
                        ForumMetrics.target_id.in_(post_ids),
                    ),
                    and_(
                        ForumMetrics.on_model == ForumTarget.COMMENT,
                        ForumMetrics.target_id.in_(comment_ids),
                    ),
                )
            )
        )

        return ForumActivity(
            posts=int(posts or 0),
            comments=int(comments or 0),
            upvotes=int(upvotes.scalar_one() or 0),
        )
