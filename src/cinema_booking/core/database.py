"""
Database configuration and async session management
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from cinema_booking.core.config import settings
from cinema_booking.core.exceptions import StoreFailureError

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()


def _configure_sqlite(engine: AsyncEngine) -> None:
    """WAL lets readers run alongside the single writer; writers wait on the busy timeout."""

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite)"""
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"timeout": 30},
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,  # Log SQL queries in debug mode
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI to provide database sessions.

    Usage:
        @router.get("/bookings")
        async def list_bookings(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(
    db: AsyncSession,
    operation: str,
    entity_id: Optional[Any] = None,
) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one atomic unit.

    Any read transaction the session autobegan is committed first so the block
    starts from fresh state. Domain errors raised inside roll everything back and
    propagate unchanged; database errors are wrapped in StoreFailureError.
    """
    if db.in_transaction():
        await db.commit()

    try:
        async with db.begin():
            yield db
    except SQLAlchemyError as e:
        logger.error(
            f"Transaction {operation} failed: {e}",
            extra={"operation": operation, "entity_id": entity_id},
        )
        raise StoreFailureError(operation, entity_id, cause=e) from e


async def init_db(bind: Optional[AsyncEngine] = None):
    """
    Initialize database tables.
    Only for development and tests.
    """
    async with (bind or engine).begin() as conn:
        # Import all models to register them with Base
        import cinema_booking.models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
