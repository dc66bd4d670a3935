"""
Database Session Management - Async SQLAlchemy session factory.

Provides separate read and write database connections. The read side falls
back to the primary when no replica is configured.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.observability.tracing import instrument_sqlalchemy

EngineRole = Literal["write", "read"]

_engines: dict[EngineRole, AsyncEngine] = {}
_session_factories: dict[EngineRole, async_sessionmaker[AsyncSession]] = {}


def _database_url(role: EngineRole) -> str:
    return settings.database_url if role == "write" else settings.read_database_url


def get_engine(role: EngineRole = "write") -> AsyncEngine:
    """Get or create the engine for the given role."""
    engine = _engines.get(role)
    if engine is None:
        engine = create_async_engine(
            _database_url(role),
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.log_level == "DEBUG",
        )
        instrument_sqlalchemy(engine)
        _engines[role] = engine
    return engine


def get_session_factory(role: EngineRole = "write") -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory for the given role."""
    factory = _session_factories.get(role)
    if factory is None:
        factory = async_sessionmaker(
            get_engine(role),
            class_=AsyncSession,
            expire_on_commit=False,
        )
        _session_factories[role] = factory
    return factory


@asynccontextmanager
async def get_write_session() -> AsyncIterator[AsyncSession]:
    """
    Get an async database session outside of a request (scripts, jobs).

    Usage:
        async with get_write_session() as session:
            await session.execute(...)
            await session.commit()
    """
    async with get_session_factory("write")() as session:
        yield session


async def get_write_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for write database session.

    Usage:
        @app.post("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_write_db)):
            ...
    """
    async with get_session_factory("write")() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for read-only database session (replica if configured)."""
    async with get_session_factory("read")() as session:
        yield session


async def close_engines() -> None:
    """Close all database engines (for graceful shutdown)."""
    for engine in _engines.values():
        await engine.dispose()
    _engines.clear()
    _session_factories.clear()
