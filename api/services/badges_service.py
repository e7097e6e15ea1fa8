"""Mentor badge catalog, metrics, and awarding.

Badges are earned from a metrics snapshot that is recomputed from the
source tables on every award pass:
- Schedules (sessions, group sessions, unique learners)
- Feedback (average rating, rating count, five-star count)
- Forum posts/comments and their vote counters
- Mentor profile trust fields (verification, credentials)

Awards are append-only: a badge is inserted the first time its rule holds
and is never revoked, even if the metrics later drop below the threshold.

CACHING:
- The award path never reads from a cache
- The persisted-badges display list is cached per mentor and invalidated
  whenever a new badge is inserted
"""

from collections.abc import Mapping
from types import MappingProxyType

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger
from core.cache import (
    get_cached_mentor_badges,
    invalidate_mentor_badges_cache,
    set_cached_mentor_badges,
)
from models import utcnow
from repositories.badge_repository import MentorBadgeRepository
from repositories.mentor_metrics_repository import MentorMetricsRepository
from repositories.profile_repository import MentorRepository
from schemas import (
    AwardedBadgeData,
    BadgeAwardResult,
    BadgeCategory,
    BadgeDefinition,
    MentorBadgeData,
    MentorMetrics,
)
from services.badge_rules import BADGE_RULES, evaluate_badge_keys

logger = get_logger(__name__)

_BADGES: tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        key="first_session",
        name="First Session",
        description="Completed your first mentoring session.",
        icon="🎯",
        color="#4F46E5",
        category=BadgeCategory.EXPERIENCE,
    ),
    BadgeDefinition(
        key="ten_sessions",
        name="10 Sessions",
        description="Completed 10 mentoring sessions.",
        icon="🗓️",
        color="#2563EB",
        category=BadgeCategory.EXPERIENCE,
    ),
    BadgeDefinition(
        key="group_host",
        name="Group Host",
        description="Hosted 3+ group sessions.",
        icon="👥",
        color="#0EA5E9",
        category=BadgeCategory.EXPERIENCE,
    ),
    BadgeDefinition(
        key="popular_mentor",
        name="Popular Mentor",
        description="Helped 10+ unique learners.",
        icon="📈",
        color="#10B981",
        category=BadgeCategory.EXPERIENCE,
    ),
    BadgeDefinition(
        key="five_star_mentor",
        name="5-Star Mentor",
        description="Received 5 or more 5-star feedback ratings.",
        icon="⭐",
        color="#F59E0B",
        category=BadgeCategory.QUALITY,
    ),
    BadgeDefinition(
        key="rising_star",
        name="Rising Star",
        description="Average rating 4.5+ with at least 5 ratings.",
        icon="🚀",
        color="#F97316",
        category=BadgeCategory.QUALITY,
    ),
    BadgeDefinition(
        key="top_rated",
        name="Top Rated",
        description="Average rating 4.8+ with at least 20 ratings.",
        icon="🏆",
        color="#D97706",
        category=BadgeCategory.QUALITY,
    ),
    BadgeDefinition(
        key="forum_starter",
        name="Forum Starter",
        description="Created 5+ forum posts.",
        icon="🗣️",
        color="#8B5CF6",
        category=BadgeCategory.COMMUNITY,
    ),
    BadgeDefinition(
        key="forum_helper",
        name="Forum Helper",
        description="Posted 10+ helpful comments.",
        icon="💬",
        color="#22C55E",
        category=BadgeCategory.COMMUNITY,
    ),
    BadgeDefinition(
        key="forum_influencer",
        name="Forum Influencer",
        description="Accumulated 50+ upvotes across posts/comments.",
        icon="📣",
        color="#EC4899",
        category=BadgeCategory.COMMUNITY,
    ),
    BadgeDefinition(
        key="verified_mentor",
        name="Verified Mentor",
        description="Verification approved by admins.",
        icon="✅",
        color="#14B8A6",
        category=BadgeCategory.TRUST,
    ),
    BadgeDefinition(
        key="credentialed",
        name="Credentialed",
        description="Uploaded credentials or a credentials folder.",
        icon="📂",
        color="#64748B",
        category=BadgeCategory.TRUST,
    ),
)

BADGES_BY_KEY: Mapping[str, BadgeDefinition] = MappingProxyType(
    {badge.key: badge for badge in _BADGES}
)

if BADGES_BY_KEY.keys() != BADGE_RULES.keys():
    raise RuntimeError("Badge catalog and badge rules must define the same keys")


def get_badge_catalog() -> list[BadgeDefinition]:
    """All badge definitions in display order (for locked/unlocked views)."""
    return list(_BADGES)


def _catalog_order(keys: set[str]) -> list[str]:
    ordered = [badge.key for badge in _BADGES if badge.key in keys]
    # Keys retired from the catalog still count as held
    ordered.extend(sorted(keys - BADGES_BY_KEY.keys()))
    return ordered


async def resolve_mentor_id(
    db: AsyncSession, mentor_or_user_id: int | str | None
) -> int | None:
    """Map a mentor id or the mentor's user id to the mentor id."""
    if mentor_or_user_id is None or mentor_or_user_id == "":
        return None
    mentor = await MentorRepository(db).find_by_id_or_user_id(mentor_or_user_id)
    return mentor.id if mentor else None


async def compute_mentor_metrics(
    db: AsyncSession, mentor_id: int
) -> MentorMetrics | None:
    """Build a fresh metrics snapshot for a mentor.

    Read-only. Returns None when the mentor does not exist. A mentor without
    a user_id has no forum identity, so forum metrics are zero.
    """
    mentor = await MentorRepository(db).get_by_id(mentor_id)
    if mentor is None:
        return None

    repo = MentorMetricsRepository(db)
    sessions = await repo.get_session_counts(mentor_id)
    ratings = await repo.get_rating_stats(mentor_id)

    forum_posts = forum_comments = forum_upvotes = 0
    if mentor.user_id:
        forum = await repo.get_forum_activity(mentor.user_id)
        forum_posts, forum_comments, forum_upvotes = forum

    return MentorMetrics(
        sessions_completed=sessions.sessions,
        group_sessions_hosted=sessions.group_sessions,
        unique_learners=sessions.unique_learners,
        avg_rating=round(ratings.avg_rating, 3),
        ratings_count=ratings.ratings_count,
        five_star_count=ratings.five_star_count,
        forum_posts=forum_posts,
        forum_comments=forum_comments,
        forum_upvotes=forum_upvotes,
        is_verified=bool(mentor.verified),
        credentials_count=len(mentor.credentials or []),
        has_credentials_folder=bool(mentor.credentials_folder_url),
    )


async def award_mentor_badges(db: AsyncSession, mentor_id: int) -> BadgeAwardResult:
    """Evaluate every badge rule for a mentor and persist newly earned badges.

    Safe to call repeatedly and concurrently: a badge is inserted at most
    once per mentor, and a lost insert race is reported under already_had.

    Never raises for an unknown mentor or a failed aggregation query (reads
    run in a savepoint so the caller's transaction survives them); the
    result comes back with skipped=True instead. Errors while inserting
    propagate so the caller's transaction is not committed half-written.

    Returns:
        BadgeAwardResult with badges inserted by this call, every badge key
        the mentor held before the call, and the metrics used.
    """
    repo = MentorBadgeRepository(db)

    # A failed read must leave the caller's transaction usable
    try:
        async with db.begin_nested():
            metrics = await compute_mentor_metrics(db, mentor_id)
            held = await repo.get_keys(mentor_id) if metrics else set()
    except SQLAlchemyError:
        logger.exception("badges.aggregation.failed", mentor_id=mentor_id)
        return BadgeAwardResult(mentor_id=mentor_id, skipped=True)

    if metrics is None:
        logger.info("badges.mentor_not_found", mentor_id=mentor_id)
        return BadgeAwardResult(mentor_id=mentor_id, skipped=True)

    achieved = evaluate_badge_keys(metrics)

    awarded: list[AwardedBadgeData] = []
    now = utcnow()
    snapshot = metrics.model_dump(mode="json")

    for badge_key in achieved:
        if badge_key in held:
            continue
        inserted = await repo.add_if_absent(
            mentor_id,
            badge_key,
            awarded_at=now,
            metrics_snapshot=snapshot,
        )
        if inserted:
            awarded.append(AwardedBadgeData(badge_key=badge_key, awarded_at=now))
        else:
            held.add(badge_key)

    if awarded:
        invalidate_mentor_badges_cache(mentor_id)
        logger.info(
            "badges.awarded",
            mentor_id=mentor_id,
            badge_keys=[badge.badge_key for badge in awarded],
        )

    return BadgeAwardResult(
        mentor_id=mentor_id,
        awarded=awarded,
        already_had=_catalog_order(held),
        metrics=metrics,
    )


async def get_mentor_badges(db: AsyncSession, mentor_id: int) -> list[MentorBadgeData]:
    """Persisted badges for a mentor, newest first, with their definitions.

    CACHING: results are cached per mentor until the TTL expires or an award
    pass inserts a badge for that mentor.
    """
    cached = get_cached_mentor_badges(mentor_id)
    if cached is not None:
        return cached

    rows = await MentorBadgeRepository(db).list_for_mentor(mentor_id)
    badges = [
        MentorBadgeData(
            badge_key=row.badge_key,
            awarded_at=row.awarded_at,
            definition=BADGES_BY_KEY.get(row.badge_key),
        )
        for row in rows
    ]
    set_cached_mentor_badges(mentor_id, badges)
    return badges
