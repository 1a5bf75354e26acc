"""
Database Session Management

Provides the async SQLAlchemy engine and session factory.
"""

from __future__ import annotations

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from ..config import settings
from ..core.errors import ConfigurationError


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine, applying pool sizing only where the dialect
    uses a queue pool.
    """
    kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10)
    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
async_engine = build_engine(settings.database_url, echo=settings.database_echo)

# Session factory
AsyncSessionLocal = build_session_factory(async_engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI endpoints that need database access.

    Usage:
        @router.get("/items")
        async def get_items(session: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def dialect_insert(session: AsyncSession, model: Any):
    """
    Return a dialect-specific INSERT construct supporting ON CONFLICT.

    PostgreSQL is the production store; SQLite backs local runs and tests.
    Both expose `on_conflict_do_update` / `on_conflict_do_nothing`.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise ConfigurationError(f"Unsupported database dialect: {dialect}")
