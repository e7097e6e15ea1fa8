"""Declarative badge rules and their evaluator.

Each badge key maps to exactly one rule: either AllOf (every condition
must hold) or AnyOf (at least one must hold). A condition compares one
MentorMetrics field against a fixed threshold.

Everything here is pure - no I/O - so the evaluator can be tested against
hand-built metrics.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

from schemas import MentorMetrics


class Comparison(StrEnum):
    GTE = ">="
    LTE = "<="
    GT = ">"
    LT = "<"
    EQ = "=="
    NE = "!="

    def apply(self, left: float | bool, right: float | bool) -> bool:
        match self:
            case Comparison.GTE:
                return left >= right
            case Comparison.LTE:
                return left <= right
            case Comparison.GT:
                return left > right
            case Comparison.LT:
                return left < right
            case Comparison.EQ:
                return left == right
            case Comparison.NE:
                return left != right


class Metric(StrEnum):
    """MentorMetrics fields a rule can reference."""

    SESSIONS_COMPLETED = "sessions_completed"
    GROUP_SESSIONS_HOSTED = "group_sessions_hosted"
    UNIQUE_LEARNERS = "unique_learners"
    AVG_RATING = "avg_rating"
    RATINGS_COUNT = "ratings_count"
    FIVE_STAR_COUNT = "five_star_count"
    FORUM_POSTS = "forum_posts"
    FORUM_COMMENTS = "forum_comments"
    FORUM_UPVOTES = "forum_upvotes"
    IS_VERIFIED = "is_verified"
    CREDENTIALS_COUNT = "credentials_count"
    HAS_CREDENTIALS_FOLDER = "has_credentials_folder"

    @property
    def is_boolean(self) -> bool:
        return self in _BOOLEAN_METRICS

    def read(self, metrics: MentorMetrics) -> float | bool:
        return getattr(metrics, self.value)


_BOOLEAN_METRICS = frozenset({Metric.IS_VERIFIED, Metric.HAS_CREDENTIALS_FOLDER})


@dataclass(frozen=True)
class Condition:
    metric: Metric
    op: Comparison
    threshold: float | bool

    def __post_init__(self) -> None:
        # bool is an int subclass, so check it explicitly in both directions
        threshold_is_bool = isinstance(self.threshold, bool)
        if self.metric.is_boolean:
            if not threshold_is_bool or self.op not in (Comparison.EQ, Comparison.NE):
                raise ValueError(
                    f"Boolean metric {self.metric} only supports == / != "
                    f"against True/False, got {self.op} {self.threshold!r}"
                )
        elif threshold_is_bool or not isinstance(self.threshold, int | float):
            raise ValueError(
                f"Numeric metric {self.metric} needs a numeric threshold, "
                f"got {self.threshold!r}"
            )

    def holds(self, metrics: MentorMetrics) -> bool:
        return self.op.apply(self.metric.read(metrics), self.threshold)


@dataclass(frozen=True)
class AllOf:
    conditions: tuple[Condition, ...]

    def is_satisfied(self, metrics: MentorMetrics) -> bool:
        return all(condition.holds(metrics) for condition in self.conditions)


@dataclass(frozen=True)
class AnyOf:
    conditions: tuple[Condition, ...]

    def is_satisfied(self, metrics: MentorMetrics) -> bool:
        return any(condition.holds(metrics) for condition in self.conditions)


type BadgeRule = AllOf | AnyOf


def _at_least(metric: Metric, value: float) -> Condition:
    return Condition(metric, Comparison.GTE, value)


def _is_true(metric: Metric) -> Condition:
    return Condition(metric, Comparison.EQ, True)


# Ordered like the badge catalog; keys must stay stable (they are persisted)
BADGE_RULES: Mapping[str, BadgeRule] = MappingProxyType(
    {
        # sessions
        "first_session": AllOf((_at_least(Metric.SESSIONS_COMPLETED, 1),)),
        "ten_sessions": AllOf((_at_least(Metric.SESSIONS_COMPLETED, 10),)),
        "group_host": AllOf((_at_least(Metric.GROUP_SESSIONS_HOSTED, 3),)),
        "popular_mentor": AllOf((_at_least(Metric.UNIQUE_LEARNERS, 10),)),
        # feedback/ratings
        "five_star_mentor": AllOf((_at_least(Metric.FIVE_STAR_COUNT, 5),)),
        "rising_star": AllOf(
            (
                _at_least(Metric.AVG_RATING, 4.5),
                _at_least(Metric.RATINGS_COUNT, 5),
            )
        ),
        "top_rated": AllOf(
            (
                _at_least(Metric.AVG_RATING, 4.8),
                _at_least(Metric.RATINGS_COUNT, 20),
            )
        ),
        # forum/community
        "forum_starter": AllOf((_at_least(Metric.FORUM_POSTS, 5),)),
        "forum_helper": AllOf((_at_least(Metric.FORUM_COMMENTS, 10),)),
        "forum_influencer": AllOf((_at_least(Metric.FORUM_UPVOTES, 50),)),
        # trust
        "verified_mentor": AllOf((_is_true(Metric.IS_VERIFIED),)),
        "credentialed": AnyOf(
            (
                _at_least(Metric.CREDENTIALS_COUNT, 1),
                _is_true(Metric.HAS_CREDENTIALS_FOLDER),
            )
        ),
    }
)


def evaluate_badge_keys(
    metrics: MentorMetrics,
    rules: Mapping[str, BadgeRule] = BADGE_RULES,
) -> list[str]:
    """Return the keys of every badge whose rule holds for `metrics`.

    Keys come back in catalog order. This says nothing about which badges
    are already persisted - see badges_service.award_mentor_badges.
    """
    return [key for key, rule in rules.items() if rule.is_satisfied(metrics)]
