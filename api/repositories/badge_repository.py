"""Repository for awarded mentor badges.

Rows are append-only: there is no update or delete here.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import MentorBadge
from repositories.utils import insert_or_ignore, log_slow_query


class MentorBadgeRepository:
    """Repository for MentorBadge database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("get_mentor_badge_keys")
    async def get_keys(self, mentor_id: int) -> set[str]:
        result = await self.db.execute(
            select(MentorBadge.badge_key).where(MentorBadge.mentor_id == mentor_id)
        )
        return set(result.scalars().all())

    @log_slow_query("list_mentor_badges")
    async def list_for_mentor(self, mentor_id: int) -> list[MentorBadge]:
        """Persisted badges for a mentor, newest first."""
        result = await self.db.execute(
            select(MentorBadge)
            .where(MentorBadge.mentor_id == mentor_id)
            .order_by(MentorBadge.awarded_at.desc(), MentorBadge.id.desc())
        )
        return list(result.scalars().all())

    @log_slow_query("award_mentor_badge")
    async def add_if_absent(
        self,
        mentor_id: int,
        badge_key: str,
        *,
        awarded_at: datetime,
        metrics_snapshot: dict[str, Any],
    ) -> bool:
        """Record a badge unless the mentor already has it.

        Returns True if this call inserted the row. A concurrent award of the
        same badge loses quietly on the (mentor_id, badge_key) constraint.
        """
        return await insert_or_ignore(
            self.db,
            MentorBadge,
            {
                "mentor_id": mentor_id,
                "badge_key": badge_key,
                "awarded_at": awarded_at,
                "metrics_snapshot": metrics_snapshot,
            },
            index_elements=["mentor_id", "badge_key"],
        )
