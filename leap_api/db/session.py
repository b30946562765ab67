from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from leap_api.core.config import get_settings


def get_async_engine(db_url: str) -> AsyncEngine:
    """Creates an asynchronous SQLAlchemy engine instance."""
    if db_url.startswith("sqlite"):
        # SQLite manages its own pool; sizing arguments are not accepted
        return create_async_engine(db_url, echo=False)
    return create_async_engine(
        db_url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=1800, # 30 minutes
        pool_timeout=5,
        echo=False, # Set to True for debugging SQL
    )


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Creates an asynchronous session factory."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False, # Important for async usage, especially with FastAPI
    )


@lru_cache
def _default_engine() -> AsyncEngine:
    # Created on first use so importing the app never opens a connection
    return get_async_engine(get_settings().database_url)


@lru_cache
def _default_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_session_factory(_default_engine())


async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency to provide a database session.

    Services commit explicitly; anything left uncommitted when the request
    fails is rolled back here.
    """
    async with _default_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    if _default_engine.cache_info().currsize:
        await _default_engine().dispose()
    _default_session_factory.cache_clear()
    _default_engine.cache_clear()
