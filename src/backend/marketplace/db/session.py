"""
Database session management with async support.

Provides the engine, connection pooling and the request-scoped unit of work.
Services never commit: ``get_db`` commits once the request handler returns
and rolls back if anything raised, so a rejected transition leaves no trace.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger

logger = get_logger(__name__)

# Global engine and session factory, created on first use
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine
    """
    global _engine

    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url

        engine_options: dict[str, Any] = {"echo": settings.database_echo}
        if db_url.startswith("postgresql"):
            connect_args: dict[str, Any] = {
                "server_settings": {"application_name": settings.app_name},
            }
            if settings.database_ssl:
                connect_args["ssl"] = True
            engine_options.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
                pool_pre_ping=True,  # Verify connections before use
                pool_recycle=300,
                connect_args=connect_args,
            )

        _engine = create_async_engine(db_url, **engine_options)

        logger.info(
            "Database engine created",
            dialect=_engine.dialect.name,
            environment=settings.environment,
        )

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the async session factory bound to the global engine.

    Returns:
        async_sessionmaker: Factory for creating async sessions
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Yields:
        AsyncSession: Database session

    Example:
        @router.get("/rfqs/{rfq_id}")
        async def get_rfq(rfq_id: UUID, db: AsyncSession = Depends(get_db)):
            return await RfqService(db).get_rfq(rfq_id)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of request context.

    Example:
        async with get_db_context() as db:
            await RfqService(db).sweep_expirations(utcnow())
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_db() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine closed")
