"""Alembic environment for the gamification tables.

Migrations run on a synchronous driver (psycopg2 / sqlite3) derived from the
application's async DATABASE_URL. On PostgreSQL a session advisory lock keeps
two deploys from migrating at the same time.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import Connection, create_engine, text

# api/ holds the models and core packages
sys.path.insert(0, str(Path(__file__).parent.parent))

import models  # noqa: F401,E402  (registers tables on Base.metadata)
from alembic import context  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.database import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

logger = logging.getLogger("alembic.env")

MIGRATION_LOCK_KEY = 724_611_903
MIGRATION_LOCK_TIMEOUT_SECONDS = 120
MIGRATION_LOCK_POLL_SECONDS = 2

_SYNC_DRIVERS = {"+asyncpg": "+psycopg2", "+aiosqlite": ""}


def sync_database_url(url: str) -> str:
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        url = url.replace(async_driver, sync_driver)
    return url


@contextmanager
def migration_lock(connection: Connection) -> Iterator[None]:
    """Hold a PostgreSQL advisory lock for the duration of the block.

    Other dialects run unlocked.
    """
    if connection.dialect.name != "postgresql":
        yield
        return

    deadline = time.monotonic() + MIGRATION_LOCK_TIMEOUT_SECONDS
    while not connection.execute(
        text("SELECT pg_try_advisory_lock(:key)"), {"key": MIGRATION_LOCK_KEY}
    ).scalar():
        if time.monotonic() >= deadline:
            raise RuntimeError(
                f"Migration lock {MIGRATION_LOCK_KEY} not acquired within "
                f"{MIGRATION_LOCK_TIMEOUT_SECONDS}s; another deploy may be stuck"
            )
        logger.info("Waiting for migration lock %s", MIGRATION_LOCK_KEY)
        time.sleep(MIGRATION_LOCK_POLL_SECONDS)
    connection.commit()
    logger.info("Acquired migration lock %s", MIGRATION_LOCK_KEY)

    try:
        yield
    finally:
        try:
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"), {"key": MIGRATION_LOCK_KEY}
            )
        except Exception:
            # Session-level locks are dropped with the connection anyway
            logger.warning("Could not release migration lock", exc_info=True)


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=sync_database_url(get_settings().database_url),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(sync_database_url(get_settings().database_url))

    try:
        with engine.connect() as connection, migration_lock(connection):
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
