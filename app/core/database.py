"""Async database engine and session management.

One engine per process; one session per request. Repositories never commit,
get_db commits once the endpoint returns and rolls back on any exception.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings


def build_engine(url: str) -> AsyncEngine:
    """Create the async engine for a database URL.

    SQLite (dev and tests) gets SQLAlchemy's default pool; server databases
    get a sized, pre-pinged pool.
    """
    options: dict[str, Any] = {"echo": settings.log_level.upper() == "DEBUG"}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return create_async_engine(url, **options)


engine = build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a request-scoped database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
