"""
Database configuration and utilities for Bia Fridge
Includes async engine setup, session management, and helper functions
"""

import logging
import time
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy import text, event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from biafridge.api.config import get_settings
from biafridge.shared.models import Base

logger = logging.getLogger(__name__)


# ============================================================================
# DATABASE URL CONFIGURATION
# ============================================================================

def get_database_url() -> str:
    """
    Resolve the async database URL from settings

    Hosted providers hand out postgres:// URLs; those are rewritten to the
    asyncpg driver. SQLite URLs are used as-is (aiosqlite).
    """
    database_url = get_settings().DATABASE_URL
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


# ============================================================================
# ENGINE CONFIGURATION
# ============================================================================

def create_database_engine(
    url: Optional[str] = None,
    pool_size: Optional[int] = None,
    max_overflow: Optional[int] = None,
    echo: Optional[bool] = None,
    pool_pre_ping: bool = True,
    pool_recycle: int = 3600,
) -> AsyncEngine:
    """
    Create async database engine

    Args:
        url: Database URL (defaults to get_database_url())
        pool_size: Permanent connections (PostgreSQL only)
        max_overflow: Additional connections on demand (PostgreSQL only)
        echo: Log all SQL statements
        pool_pre_ping: Test connections before use
        pool_recycle: Recycle connections after N seconds

    Returns:
        AsyncEngine for the configured backend
    """
    settings = get_settings()
    if url is None:
        url = get_database_url()
    if echo is None:
        echo = settings.DATABASE_ECHO

    if is_sqlite(url):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if make_url(url).database in (None, "", ":memory:"):
            # In-memory databases live as long as their single connection
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, echo=echo, **kwargs)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        pool_size=pool_size if pool_size is not None else settings.DATABASE_POOL_SIZE,
        max_overflow=max_overflow if max_overflow is not None else settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=pool_pre_ping,
        pool_recycle=pool_recycle,
        echo=echo,
        connect_args={
            "server_settings": {
                "application_name": "biafridge_api",
                "timezone": "UTC",
            },
            "command_timeout": 60,
            "timeout": 10,
        },
    )


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects stay readable after every store commit
        autoflush=False,
    )


# ============================================================================
# GLOBAL ENGINE & SESSION FACTORY
# ============================================================================

engine: AsyncEngine = create_database_engine()

AsyncSessionLocal = create_session_factory(engine)


# ============================================================================
# SESSION MANAGEMENT
# ============================================================================

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency to get database session

    Usage:
        @router.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            result = await session.execute(select(FridgeItem))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database session (scripts and other non-FastAPI code)

    Usage:
        async with get_session_context() as session:
            result = await session.execute(select(Invite))
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ============================================================================
# DATABASE LIFECYCLE
# ============================================================================

async def init_database(bind: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables that do not exist yet
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


async def close_database() -> None:
    """
    Close database connections (call on app shutdown)
    """
    await engine.dispose()
    logger.info("Database connections closed")


# ============================================================================
# HEALTH CHECK
# ============================================================================

async def check_database_health() -> dict:
    """
    Check database connectivity

    Returns:
        {
            "status": "healthy" | "unhealthy",
            "backend": "postgresql" | "sqlite",
            "response_time_ms": 1.3
        }
    """
    try:
        start_time = time.time()

        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))

        response_time_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "backend": engine.dialect.name,
            "response_time_ms": round(response_time_ms, 2),
        }

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }
