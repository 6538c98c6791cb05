"""
Neighborhood Hub Backend — Database Session Management
======================================================

What:  Async SQLAlchemy engine, session factory, declarative base and the
       per-request session dependency.
How:   One engine (asyncpg, pooled) per process; one AsyncSession per request
       that commits on success and rolls back on error.
Who:   Route handlers via `Depends(get_db_session)`; Alembic via `Base.metadata`.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


def _engine_options() -> dict:
    # SQLite (used by the test suite) rejects the QueuePool sizing arguments
    if settings.database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level == "DEBUG",
    **_engine_options(),
)

# expire_on_commit=False: rows stay readable after the dependency commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata drives Alembic."""
    pass


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits when the handler returns normally. On any exception the
    transaction is rolled back and the exception re-raised for the global
    handlers. The onboarding upserts rely on this: if the neighborhood
    upsert fails, the profile upsert is rolled back with it.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def dispose_engine() -> None:
    """Close all pooled connections; called from the lifespan shutdown."""
    await engine.dispose()
