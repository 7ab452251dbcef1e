"""Async SQLAlchemy engine and session factory.

Usage:
    engine = create_engine(settings.DATABASE_URL)
    session_factory = create_session_factory(engine)

    async with session_factory() as session:
        result = await session.execute(select(PhotoRecord))
"""
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from photopipe.db.models import Base


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; pool options only apply to server databases."""
    if database_url.startswith("sqlite"):
        database = make_url(database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables (local and development databases)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
