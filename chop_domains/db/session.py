"""
Async engine and session factory.

Every registry operation opens its own session from the factory returned by
create_sessionmaker(); objects stay usable after commit.
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)

from .base import Base

logger = logging.getLogger("chop_domains.db")

SLOW_QUERY_THRESHOLD_MS = 500


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine and attach slow query logging."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Writers wait on the database lock instead of failing immediately
        connect_args["timeout"] = 15

    engine = create_async_engine(database_url, echo=echo, connect_args=connect_args)

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000
        if total_ms >= SLOW_QUERY_THRESHOLD_MS:
            preview = statement[:500] + "..." if len(statement) > 500 else statement
            logger.warning(f"Slow query ({total_ms:.1f} ms): {preview}")

    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Importing the models registers them on Base.metadata
    from ..domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
