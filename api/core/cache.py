"""In-memory TTL caching utilities.

Note: Cache is per-worker/replica, not shared across instances.
Only the display path (a mentor's persisted badges) is cached; the award
path always recomputes from the database so a newly satisfied badge is
awarded on the next call.
"""

from typing import TYPE_CHECKING

from cachetools import TTLCache

from core.config import get_settings

if TYPE_CHECKING:
    from schemas import MentorBadgeData

# Persisted badges cache: keyed by mentor_id, stores the newest-first list
_mentor_badges_cache: "TTLCache[int, list[MentorBadgeData]] | None" = None


def _get_mentor_badges_cache() -> "TTLCache[int, list[MentorBadgeData]]":
    global _mentor_badges_cache
    if _mentor_badges_cache is None:
        settings = get_settings()
        _mentor_badges_cache = TTLCache(
            maxsize=settings.badge_cache_max_size,
            ttl=settings.badge_cache_ttl_seconds,
        )
    return _mentor_badges_cache


def get_cached_mentor_badges(mentor_id: int) -> "list[MentorBadgeData] | None":
    return _get_mentor_badges_cache().get(mentor_id)


def set_cached_mentor_badges(
    mentor_id: int, badges: "list[MentorBadgeData]"
) -> None:
    _get_mentor_badges_cache()[mentor_id] = badges


def invalidate_mentor_badges_cache(mentor_id: int) -> None:
    """Call after inserting badges for a mentor."""
    _get_mentor_badges_cache().pop(mentor_id, None)


def clear_all_caches() -> None:
    """For testing. Next access rebuilds the cache from current settings."""
    global _mentor_badges_cache
    _mentor_badges_cache = None


def get_cache_stats() -> dict[str, dict[str, int]]:
    cache = _get_mentor_badges_cache()
    return {
        "mentor_badges_cache": {
            "current_size": len(cache),
            "max_size": int(cache.maxsize),
        },
    }
