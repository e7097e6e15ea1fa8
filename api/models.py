"""SQLAlchemy models for MindMate ranks, badges, and their data sources."""

from datetime import UTC, date, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class RankTier(str, PyEnum):
    """Learner progression tiers, lowest first. Professional is terminal."""

    BEGINNER_III = "Beginner III"
    BEGINNER_II = "Beginner II"
    BEGINNER_I = "Beginner I"
    INTERMEDIATE_III = "Intermediate III"
    INTERMEDIATE_II = "Intermediate II"
    INTERMEDIATE_I = "Intermediate I"
    ADVANCED_IV = "Advanced IV"
    ADVANCED_III = "Advanced III"
    ADVANCED_II = "Advanced II"
    ADVANCED_I = "Advanced I"
    EXPERT_V = "Expert V"
    EXPERT_IV = "Expert IV"
    EXPERT_III = "Expert III"
    EXPERT_II = "Expert II"
    EXPERT_I = "Expert I"
    PROFESSIONAL = "Professional"


class SessionType(str, PyEnum):
    ONE_ON_ONE = "one-on-one"
    GROUP = "group"


class ForumTarget(str, PyEnum):
    """What a forum_metrics row counts votes for."""

    POST = "post"
    COMMENT = "comment"


# =============================================================================
# Profiles
# =============================================================================


class Learner(TimestampMixin, Base):
    """Learner profile. Only the fields the rank engine reads are modelled."""

    __tablename__ = "learners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Declared subjects of interest; only sessions in these subjects rank up
    subjects: Mapped[list[str]] = mapped_column(JSON, default=list)

    rank: Mapped["LearnerRank | None"] = relationship(
        back_populates="learner",
        cascade="all, delete-orphan",
        uselist=False,
    )


class Mentor(TimestampMixin, Base):
    """Mentor profile with the trust signals used by badges."""

    __tablename__ = "mentors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    credentials: Mapped[list[str]] = mapped_column(JSON, default=list)
    credentials_folder_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    badges: Mapped[list["MentorBadge"]] = relationship(
        back_populates="mentor",
        cascade="all, delete-orphan",
    )


# =============================================================================
# Sessions and feedback
# =============================================================================


schedule_learners = Table(
    "schedule_learners",
    Base.metadata,
    Column(
        "schedule_id",
        Integer,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "learner_id",
        Integer,
        ForeignKey("learners.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Schedule(TimestampMixin, Base):
    """A tutoring session between one mentor and one or more learners."""

    __tablename__ = "schedules"
    __table_args__ = (Index("ix_schedules_mentor_type", "mentor_id", "session_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("mentors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    session_type: Mapped[SessionType] = mapped_column(
        _enum_column(SessionType, "session_type"),
        nullable=False,
    )
    session_date: Mapped[date] = mapped_column(Date, nullable=False)

    learners: Mapped[list["Learner"]] = relationship(secondary=schedule_learners)


class Feedback(TimestampMixin, Base):
    """A learner's rating of a mentor for one schedule."""

    __tablename__ = "feedback"
    __table_args__ = (Index("ix_feedback_mentor", "mentor_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
    )
    mentor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("mentors.id", ondelete="CASCADE"),
        nullable=False,
    )
    learner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("learners.id", ondelete="CASCADE"),
        nullable=False,
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)


# =============================================================================
# Forum
# =============================================================================


class ForumPost(TimestampMixin, Base):
    __tablename__ = "forum_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_user_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)


class ForumComment(TimestampMixin, Base):
    __tablename__ = "forum_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("forum_posts.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_user_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    body: Mapped[str] = mapped_column(Text, default="")


class ForumMetrics(TimestampMixin, Base):
    """Vote counters for a single post or comment."""

    __tablename__ = "forum_metrics"
    __table_args__ = (
        UniqueConstraint("target_id", "on_model", name="uq_forum_metrics_target"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    on_model: Mapped[ForumTarget] = mapped_column(
        _enum_column(ForumTarget, "forum_target"),
        nullable=False,
    )
    upvote: Mapped[int] = mapped_column(Integer, default=0)
    downvote: Mapped[int] = mapped_column(Integer, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, default=0)


# =============================================================================
# Gamification
# =============================================================================


class LearnerRank(Base):
    """Rank state for one learner.

    `version` is bumped on every write; updates are compare-and-swap on it.
    """

    __tablename__ = "learner_ranks"
    __table_args__ = (UniqueConstraint("learner_id", name="uq_learner_ranks_learner"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("learners.id", ondelete="CASCADE"),
        nullable=False,
    )
    total_sessions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rank: Mapped[RankTier] = mapped_column(
        _enum_column(RankTier, "rank_tier"),
        default=RankTier.BEGINNER_III,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    learner: Mapped["Learner"] = relationship(back_populates="rank")


class MentorBadge(Base):
    """A badge earned by a mentor. Append-only, one row per (mentor, badge).

    Note: Only has awarded_at/created_at since awards are never updated.
    """

    __tablename__ = "mentor_badges"
    __table_args__ = (
        UniqueConstraint("mentor_id", "badge_key", name="uq_mentor_badge"),
        Index("ix_mentor_badges_mentor_awarded", "mentor_id", "awarded_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("mentors.id", ondelete="CASCADE"),
        nullable=False,
    )
    badge_key: Mapped[str] = mapped_column(String(64), nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    # Metrics at award time, kept for auditing; never read by the evaluator
    metrics_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    mentor: Mapped["Mentor"] = relationship(back_populates="badges")
