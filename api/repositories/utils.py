"""Shared helpers for the repositories: query timing and portable upserts."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import Insert, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger

logger = get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500

P = ParamSpec("P")
R = TypeVar("R")


def log_slow_query(
    operation_name: str,
    threshold_ms: float = SLOW_QUERY_THRESHOLD_MS,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Time a repository coroutine.

    Emits db.query.slow when it takes longer than threshold_ms and
    db.query.failed (then re-raises) when it errors.
    """

    def wrap(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def timed(*args: P.args, **kwargs: P.kwargs) -> R:
            started = time.perf_counter()
            failed: BaseException | None = None
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                failed = exc
                raise
            finally:
                elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
                if failed is not None:
                    logger.error(
                        "db.query.failed",
                        db_operation=operation_name,
                        db_duration_ms=elapsed_ms,
                        db_error_type=type(failed).__name__,
                        db_error=str(failed),
                    )
                elif elapsed_ms > threshold_ms:
                    logger.warning(
                        "db.query.slow",
                        db_operation=operation_name,
                        db_duration_ms=elapsed_ms,
                    )

        return timed

    return wrap


def _dialect_name(db: AsyncSession) -> str:
    bind = db.get_bind()
    return bind.dialect.name if bind else ""


async def insert_or_ignore[T](
    db: AsyncSession,
    model: type[T],
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """INSERT a row unless it collides with an existing unique key.

    Returns True when a row was inserted, False when the unique key already
    existed. Uses ON CONFLICT DO NOTHING on PostgreSQL/SQLite and a savepoint
    elsewhere, so a conflict never poisons the caller's transaction.

    Never commits.
    """
    dialect = _dialect_name(db)

    stmt: Insert
    if dialect == "postgresql":
        stmt = (
            pg_insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=index_elements)
        )
    elif dialect == "sqlite":
        stmt = (
            sqlite_insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=index_elements)
        )
    else:
        try:
            async with db.begin_nested():
                await db.execute(insert(model).values(**values))
        except IntegrityError:
            return False  # Savepoint rolled back, row already present
        return True

    result = await db.execute(stmt)
    return result.rowcount == 1
