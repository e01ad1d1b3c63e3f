"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode: one pooled engine per process,
AsyncSession per request, handed out through the get_db dependency.

PostgreSQL (asyncpg) is the production target. A sqlite+aiosqlite URL
works for local hacking; SQLite picks its own pool class, so the
PostgreSQL pool sizing is only applied to server databases.
Tests override get_db with a session bound to an in-memory SQLite engine.
"""

from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from vaultsync.config import settings


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {}
    # 5 steady connections, up to 20 under heartbeat bursts
    return {"pool_size": 5, "max_overflow": 15, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        yield session
