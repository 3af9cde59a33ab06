"""Async database engine and session factory.

The row store never shares a session between two calls: every statement is
executed in its own short-lived session and committed immediately. Nothing in
this package relies on multi-statement transactions.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import get_settings
from models.base import Base


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create an async engine for the given URL (defaults to settings).

    Pool settings only apply to server databases (not SQLite).
    """
    settings = get_settings()
    url = database_url or settings.DATABASE_URL

    engine_kwargs = {
        "echo": settings.DATABASE_ECHO if echo is None else echo,
    }
    if not url.startswith("sqlite"):
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        engine_kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW

    return create_async_engine(url, **engine_kwargs)


@lru_cache()
def get_engine() -> AsyncEngine:
    """Process-wide engine, created lazily on first use."""
    return build_engine()


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def get_db_session(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for a single-statement session.

    Usage:
        async with get_db_session() as session:
            await session.execute(stmt)

    Commits on success, rolls back on exception.
    """
    factory = session_factory or build_session_factory(get_engine())
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables known to the declarative base."""
    # Registers every model on Base.metadata
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
