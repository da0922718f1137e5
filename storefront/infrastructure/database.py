"""Database engine and session management.

The storefront runs on PostgreSQL through asyncpg. SQLite URLs are
accepted for local runs and tests and get no connection pool sizing.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from storefront.infrastructure.config import settings


def engine_options(database_url: str) -> dict[str, Any]:
    """Engine keyword arguments for a database URL."""
    options: dict[str, Any] = {"echo": settings.debug}
    if make_url(database_url).get_backend_name() == "sqlite":
        return options

    options.update(
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for storefront tables."""


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.

    Services commit their own units of work; anything left pending
    when the request ends is committed here, and rolled back on error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping(session: AsyncSession) -> None:
    """Round-trip to the database. Raises SQLAlchemyError when unreachable."""
    await session.execute(text("SELECT 1"))


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
