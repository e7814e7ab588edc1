"""Async database engine and session management."""

import logging
from collections.abc import AsyncIterator
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ideabank.config import settings
from ideabank.db.models import Base

logger = logging.getLogger(__name__)

# Singleton engine / session factory, created on first use
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    kwargs: dict = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the coordinator and the API."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


def get_engine() -> AsyncEngine:
    """Get or create the shared engine."""
    global _engine, _session_factory

    if _engine is None:
        _engine = make_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        _session_factory = make_session_factory(_engine)
        logger.debug("Created database engine")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the shared session factory."""
    get_engine()
    assert _session_factory is not None
    return _session_factory


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session from the shared factory."""
    async with get_session_factory()() as session:
        yield session


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; production uses Alembic)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(create_all: bool = False) -> None:
    """Verify connectivity and optionally create the schema."""
    engine = get_engine()
    if create_all:
        await create_schema(engine)
    async with engine.connect():
        pass
    logger.info("Database connection initialized")


async def close_db() -> None:
    """Dispose of the shared engine (call on application shutdown)."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.debug("Closed database engine")
