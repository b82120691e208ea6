"""Database engine and session management for dnsprices.

Every ingestion run owns its engine, so engines are created on demand rather
than cached process-wide.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from dnsprices.db.models import Base


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite connections get foreign-key enforcement switched on so that
    deleting a city or product cascades to its observations.

    Args:
        url: SQLAlchemy async URL (e.g. sqlite+aiosqlite:///prices.db)
        echo: Log every SQL statement

    Returns:
        AsyncEngine: SQLAlchemy async engine
    """
    engine = create_async_engine(url, echo=echo)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


async def init_db(engine: AsyncEngine, drop: bool = False) -> None:
    """Create all tables that do not exist yet.

    Args:
        engine: Engine to create the schema on
        drop: Drop existing tables first
    """
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Get async database session (context manager).

    Usage:
        async with get_session(engine) as session:
            result = await session.execute(query)

    Commits on success, rolls back on error.
    """
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    session = session_factory()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
