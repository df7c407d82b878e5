"""
Database configuration and connection management
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from insitu.database.models import Base


def async_database_url(database_url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg:// for async support"""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def create_engine_and_sessionmaker(
    database_url: str, echo: bool = False, pool_size: int = 10, max_overflow: int = 20
) -> Tuple[AsyncEngine, async_sessionmaker]:
    url = async_database_url(database_url)
    engine_kwargs = {"echo": echo}
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_pre_ping=True)

    engine = create_async_engine(url, **engine_kwargs)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, session_factory


async def create_tables(engine: AsyncEngine):
    """Create all database tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_db_session(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """Get async database session"""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency for database sessions"""
    async with get_db_session(request.app.state.context.session_factory) as session:
        yield session
