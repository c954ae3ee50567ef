"""
Async engine and sessions for the sync database.

SQLite (aiosqlite) is used in development and tests, PostgreSQL (asyncpg) in
production. Request handlers get a session from get_async_session(); batch
workers use get_async_db_context().
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cassius_sync.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

if settings.is_production:
    settings.validate_production_config()


def _get_async_database_url(sync_url: str) -> str:
    """Swap in the async driver for the configured database."""
    if "sqlite" in sync_url.lower():
        return sync_url.replace("sqlite:///", "sqlite+aiosqlite:///")
    elif "postgresql" in sync_url.lower():
        return sync_url.replace("postgresql://", "postgresql+asyncpg://")
    return sync_url


async_database_url = _get_async_database_url(settings.database_url)


def configure_sqlite_engine(engine: AsyncEngine) -> AsyncEngine:
    """
    Apply SQLite connection settings to an async engine.

    - Enforces foreign key constraints
    - Lets SQLAlchemy emit BEGIN itself so SAVEPOINTs (used for per-event
      rollback during imports) nest inside the outer transaction
    """

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_conn.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


if "sqlite" in settings.database_url.lower():
    async_engine = configure_sqlite_engine(create_async_engine(
        async_database_url,
        echo=settings.log_level == "DEBUG",
    ))

else:
    async_engine = create_async_engine(
        async_database_url,
        pool_size=5,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=settings.log_level == "DEBUG",
    )

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for FastAPI routes.

    Commits when the route returns and rolls back if it raised.

    Usage in FastAPI:
        @router.get("/conflicts")
        async def list_conflicts(session: AsyncSession = Depends(get_async_session)):
            result = await session.execute(select(SyncConflict))
            return result.scalars().all()

    Yields:
        AsyncSession: SQLAlchemy async database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_async_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for batch jobs and scripts running outside a request.

    Usage for scheduled sync jobs and scripts:
        async with get_async_db_context() as session:
            result = await OutboundSyncEngine(session).sync(organisation_id)

    Yields:
        AsyncSession: SQLAlchemy async database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Create missing tables (development startup only; production runs Alembic).
    """
    from cassius_sync.models.base import Base

    if async_engine.dialect.name == "sqlite":
        database = async_engine.url.database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    logger.info("Creating sync tables")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Sync tables ready")


async def check_connection() -> bool:
    """
    Run a trivial query; used by the health endpoint.
    """
    from sqlalchemy import text

    try:
        async with get_async_db_context() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
