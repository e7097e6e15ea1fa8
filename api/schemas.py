"""Pydantic schemas exchanged between the engines and their callers."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from models import RankTier


class RankState(BaseModel):
    """Stored rank fields for one learner, detached from the ORM row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    total_sessions: int = Field(default=0, ge=0)
    progress: int = Field(default=0, ge=0)
    rank: RankTier = RankTier.BEGINNER_III


class RankProgress(BaseModel):
    """Result of applying completed sessions to a rank state."""

    model_config = ConfigDict(frozen=True)

    state: RankState
    promotions: list[RankTier] = Field(default_factory=list)


class RankSummary(BaseModel):
    """Rank state plus derived values shown on a learner profile.

    required_sessions and sessions_to_next_rank are None at the terminal tier.
    """

    learner_id: int
    rank: RankTier
    progress: int
    total_sessions: int
    required_sessions: int | None
    sessions_to_next_rank: int | None


class BadgeCategory(StrEnum):
    EXPERIENCE = "experience"
    QUALITY = "quality"
    COMMUNITY = "community"
    TRUST = "trust"


class BadgeDefinition(BaseModel):
    """Display metadata for a badge in the static catalog."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    description: str
    icon: str
    color: str = "#64748B"
    category: BadgeCategory = BadgeCategory.EXPERIENCE


class MentorMetrics(BaseModel):
    """Facts about a mentor that badge rules are evaluated against.

    Always recomputed from source tables; only persisted as an audit copy
    inside an awarded badge.
    """

    model_config = ConfigDict(frozen=True)

    # sessions
    sessions_completed: int = 0
    group_sessions_hosted: int = 0
    unique_learners: int = 0
    # feedback
    avg_rating: float = 0.0
    ratings_count: int = 0
    five_star_count: int = 0
    # forum
    forum_posts: int = 0
    forum_comments: int = 0
    forum_upvotes: int = 0
    # trust
    is_verified: bool = False
    credentials_count: int = 0
    has_credentials_folder: bool = False


class AwardedBadgeData(BaseModel):
    """A badge newly inserted by an award call."""

    badge_key: str
    awarded_at: datetime


class BadgeAwardResult(BaseModel):
    """Outcome of one award pass for a mentor.

    `skipped` is True when the pass could not run (unknown mentor or a
    failed aggregation); `awarded` and `already_had` are then empty.
    """

    mentor_id: int | None = None
    awarded: list[AwardedBadgeData] = Field(default_factory=list)
    already_had: list[str] = Field(default_factory=list)
    metrics: MentorMetrics | None = None
    skipped: bool = False


class MentorBadgeData(BaseModel):
    """A persisted badge with its catalog definition, for display."""

    model_config = ConfigDict(from_attributes=True)

    badge_key: str
    awarded_at: datetime
    definition: BadgeDefinition | None = None
