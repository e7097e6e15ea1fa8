"""Pytest configuration and shared fixtures.

This module provides:
- A fresh SQLite database file per test (aiosqlite), schema from the models
- Async session and session-maker fixtures for repository/service tests
- Settings and cache resets between tests

SQLite runs with SQLAlchemy's documented recipe for driver-level
transactions so SAVEPOINT (begin_nested) behaves as on PostgreSQL.
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

import models  # noqa: F401  (registers tables on Base.metadata)
from core.cache import clear_all_caches
from core.config import clear_settings_cache
from core.database import Base, create_session_maker

# =============================================================================
# Database Fixtures
# =============================================================================


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy, not the driver, decide when transactions begin
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create a database engine backed by a throwaway SQLite file.

    A file (not :memory:) lets several sessions, including those opened by
    background jobs, see each other's committed data.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'mindmate_test.db'}",
        poolclass=NullPool,
        echo=False,
    )
    _enable_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """A session for one test. Data is discarded with the database file."""
    async with session_maker() as session:
        yield session


# =============================================================================
# Utility Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_caches() -> Generator[None]:
    clear_all_caches()
    yield
    clear_all_caches()
