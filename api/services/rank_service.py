"""Learner rank progression.

A learner climbs a fixed 16-tier ladder. Each tier except the last has a
threshold: the number of qualifying sessions needed *while at that tier*
to move up. Progress carries over, so one large update can cascade through
several tiers.

Invariant after every update: progress < threshold(rank), unless the rank
is Professional (terminal), where progress keeps accumulating.

CONCURRENCY:
- Rank rows carry a version counter; writes are compare-and-swap on it
- A lost race re-reads and recomputes (bounded, jittered retries)
"""

from collections.abc import Mapping
from types import MappingProxyType

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core import get_logger
from core.config import get_settings
from models import LearnerRank, RankTier
from repositories.profile_repository import LearnerRepository
from repositories.rank_repository import RankRepository
from schemas import RankProgress, RankState, RankSummary

logger = get_logger(__name__)

RANK_LADDER: tuple[RankTier, ...] = tuple(RankTier)

# Sessions required while at a tier to advance to the next one.
# Professional is terminal and deliberately absent.
RANK_THRESHOLDS: Mapping[RankTier, int] = MappingProxyType(
    {
        RankTier.BEGINNER_III: 5,
        RankTier.BEGINNER_II: 7,
        RankTier.BEGINNER_I: 8,
        RankTier.INTERMEDIATE_III: 8,
        RankTier.INTERMEDIATE_II: 10,
        RankTier.INTERMEDIATE_I: 12,
        RankTier.ADVANCED_IV: 8,
        RankTier.ADVANCED_III: 8,
        RankTier.ADVANCED_II: 10,
        RankTier.ADVANCED_I: 13,
        RankTier.EXPERT_V: 8,
        RankTier.EXPERT_IV: 8,
        RankTier.EXPERT_III: 10,
        RankTier.EXPERT_II: 12,
        RankTier.EXPERT_I: 15,
    }
)


class InvalidSessionCountError(ValueError):
    """Raised for a non-positive or non-integer session count under the
    "reject" policy."""


class RankWriteConflictError(Exception):
    """Raised when a rank update keeps losing compare-and-swap races."""

    def __init__(self, learner_id: int, attempts: int):
        super().__init__(
            f"Rank for learner {learner_id} changed concurrently "
            f"{attempts} times in a row"
        )
        self.learner_id = learner_id
        self.attempts = attempts


def threshold_for(rank: RankTier) -> int | None:
    """Sessions needed to leave `rank`, or None for the terminal tier."""
    return RANK_THRESHOLDS.get(rank)


def is_terminal(rank: RankTier) -> bool:
    return rank not in RANK_THRESHOLDS


def next_rank(rank: RankTier) -> RankTier | None:
    index = RANK_LADDER.index(rank)
    if index == len(RANK_LADDER) - 1:
        return None
    return RANK_LADDER[index + 1]


def normalize_session_count(count: object, policy: str | None = None) -> int:
    """Validate a session count according to the configured policy.

    Positive integral floats such as 2.0 count as that many sessions.
    "default" turns anything else that is not a positive int into 1, matching
    the legacy behaviour; "reject" raises InvalidSessionCountError.
    """
    if policy is None:
        policy = get_settings().rank_invalid_count_policy

    # bool is an int subclass; True is not a session count
    if isinstance(count, int) and not isinstance(count, bool) and count > 0:
        return count

    if isinstance(count, float) and count.is_integer() and count > 0:
        return int(count)

    if policy == "reject":
        raise InvalidSessionCountError(
            f"Session count must be a positive integer, got {count!r}"
        )

    logger.warning("rank.session_count.defaulted", received=repr(count))
    return 1


def apply_sessions(state: RankState, count: int) -> RankProgress:
    """Add `count` completed sessions and promote as far as progress allows.

    Pure function: no I/O. `count` must already be normalized.
    """
    if count < 1:
        raise InvalidSessionCountError(
            f"Session count must be a positive integer, got {count!r}"
        )

    total_sessions = state.total_sessions + count
    progress = state.progress + count
    rank = state.rank
    promotions: list[RankTier] = []

    threshold = threshold_for(rank)
    while threshold is not None and progress >= threshold:
        progress -= threshold
        promoted = next_rank(rank)
        assert promoted is not None  # only the terminal tier lacks a threshold
        rank = promoted
        promotions.append(rank)
        threshold = threshold_for(rank)

    return RankProgress(
        state=RankState(total_sessions=total_sessions, progress=progress, rank=rank),
        promotions=promotions,
    )


def summarize_rank(learner_id: int, state: RankState) -> RankSummary:
    """Attach the derived 'sessions to next rank' values to a rank state."""
    required = threshold_for(state.rank)
    return RankSummary(
        learner_id=learner_id,
        rank=state.rank,
        progress=state.progress,
        total_sessions=state.total_sessions,
        required_sessions=required,
        sessions_to_next_rank=(
            None if required is None else max(required - state.progress, 0)
        ),
    )


def _to_state(row: LearnerRank) -> RankState:
    return RankState.model_validate(row)


async def get_or_create_rank(db: AsyncSession, learner_id: int) -> RankSummary | None:
    """Ensure the learner has a rank row (e.g. on signup).

    Returns None when the learner does not exist.
    """
    learner = await LearnerRepository(db).get_by_id(learner_id)
    if learner is None:
        logger.info("rank.learner_not_found", learner_id=learner_id)
        return None

    row = await RankRepository(db).get_or_create(learner_id)
    return summarize_rank(learner_id, _to_state(row))


async def backfill_missing_ranks(db: AsyncSession) -> list[int]:
    """Create starting rank rows for every learner that lacks one.

    Returns the learner ids that received a row.
    """
    repo = RankRepository(db)
    learner_ids = await repo.list_learner_ids_without_rank()
    for learner_id in learner_ids:
        await repo.get_or_create(learner_id)
        logger.info("rank.backfilled", learner_id=learner_id)
    return learner_ids


async def get_rank_summary(db: AsyncSession, learner_id: int) -> RankSummary | None:
    """Rank for display. None if the learner has no rank row yet."""
    row = await RankRepository(db).get_by_learner_id(learner_id)
    if row is None:
        return None
    return summarize_rank(learner_id, _to_state(row))


async def add_sessions(
    db: AsyncSession,
    learner_id: int,
    count: object = 1,
) -> RankSummary | None:
    """Record `count` qualifying sessions for a learner and persist the result.

    Creates the rank row on first use. Returns None (and writes nothing) when
    the learner does not exist.

    Raises:
        InvalidSessionCountError: bad count under the "reject" policy.
        RankWriteConflictError: compare-and-swap lost on every attempt.
    """
    settings = get_settings()
    sessions = normalize_session_count(count, settings.rank_invalid_count_policy)

    learner = await LearnerRepository(db).get_by_id(learner_id)
    if learner is None:
        logger.info("rank.learner_not_found", learner_id=learner_id)
        return None

    repo = RankRepository(db)
    attempts = settings.rank_write_max_attempts

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(RankWriteConflictError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(initial=0.01, max=0.2),
        reraise=True,
    ):
        with attempt:
            row = await repo.get_or_create(learner_id)
            current = _to_state(row)
            outcome = apply_sessions(current, sessions)

            written = await repo.compare_and_set(
                learner_id,
                expected_version=row.version,
                total_sessions=outcome.state.total_sessions,
                progress=outcome.state.progress,
                rank=outcome.state.rank,
            )
            if not written:
                logger.info(
                    "rank.write.conflict",
                    learner_id=learner_id,
                    attempt=attempt.retry_state.attempt_number,
                )
                raise RankWriteConflictError(learner_id, attempts)

    for promoted in outcome.promotions:
        logger.info(
            "rank.promoted",
            learner_id=learner_id,
            rank=promoted.value,
        )

    logger.info(
        "rank.sessions.added",
        learner_id=learner_id,
        sessions=sessions,
        total_sessions=outcome.state.total_sessions,
        rank=outcome.state.rank.value,
    )
    return summarize_rank(learner_id, outcome.state)
