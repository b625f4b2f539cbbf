"""Async engine and session factory for the scoring database (SQLite or PostgreSQL)."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from leaguepicks.config import get_settings

logger = logging.getLogger(__name__)

_ASYNC_DRIVERS = {
    "sqlite://": "sqlite+aiosqlite://",
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
}


def get_database_url(url: str) -> str:
    """Point a plain sqlite/postgres URL at its async driver; other URLs pass through."""
    for prefix, async_prefix in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    # Scoring transactions are short; anything past 60s is stuck
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "connect_args": {"server_settings": {"statement_timeout": "60000"}},
    }


DATABASE_URL = get_database_url(get_settings().DATABASE_URL)

async_engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# Each job opens its own short-lived session from this factory
async_session_maker = sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Create any missing tables."""
    import leaguepicks.models  # noqa: F401  (registers table metadata)

    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info(f"[DB] Tables ready on {async_engine.url.render_as_string(hide_password=True)}")


async def close_db() -> None:
    await async_engine.dispose()
    logger.info("[DB] Engine disposed")
