"""Database engine, session factory, and unit-of-work helpers.

The engines never commit on their own: callers own the transaction. Background
jobs and scripts that have no caller use session_scope() to get one.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_delay,
    wait_exponential,
)

from core.config import Settings, get_settings
from core.logger import get_logger

logger = get_logger(__name__)

# How long init_db keeps retrying an unreachable database
CONNECT_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    pass


def _engine_options(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.db_echo}
    if not settings.is_postgres:
        # SQLite (local runs, tests) uses SQLAlchemy's default pooling
        return options

    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "statement_timeout": str(settings.db_statement_timeout_ms),
                "application_name": "mindmate-gamification",
            }
        },
    )
    return options


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    return create_async_engine(settings.database_url, **_engine_options(settings))


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False so returned ORM rows stay readable after commit
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """One transaction: commit when the block succeeds, roll back otherwise."""
    async with session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def init_db(engine: AsyncEngine) -> None:
    """Wait until the database answers. Schema is managed by migrations."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type((OperationalError, OSError)),
        stop=stop_after_delay(CONNECT_TIMEOUT_SECONDS),
        wait=wait_exponential(multiplier=0.5, max=5),
        reraise=True,
    ):
        with attempt:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
    logger.info(
        "db.connectivity.verified",
        attempts=attempt.retry_state.attempt_number,
    )


async def dispose_engine(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("db.engine.disposed")
