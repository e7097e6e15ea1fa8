"""Data access for learners, mentors, ranks, badges and mentor metrics.

All SQL lives here. Repositories flush but never commit; the service or
script that opened the session owns the transaction.
"""

from repositories.badge_repository import MentorBadgeRepository
from repositories.mentor_metrics_repository import MentorMetricsRepository
from repositories.profile_repository import LearnerRepository, MentorRepository
from repositories.rank_repository import RankRepository
from repositories.utils import log_slow_query

__all__ = [
    "LearnerRepository",
    "MentorBadgeRepository",
    "MentorMetricsRepository",
    "MentorRepository",
    "RankRepository",
    "log_slow_query",
]
