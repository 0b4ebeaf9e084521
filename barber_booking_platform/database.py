"""
Database connection management and session handling.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)

from .config import Settings
from .models.base import Base

logger = logging.getLogger(__name__)

# Execution option carrying a per-transaction lock wait in seconds
LOCK_WAIT_OPTION = "lock_wait_timeout"


def create_database_engine(settings: Settings, database_url: Optional[str] = None) -> AsyncEngine:
    """Create and configure the database engine with connection pooling."""
    url = make_url(database_url or settings.database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(
            url,
            echo=settings.database_echo,
            # Seconds a writer waits on the database lock before "database is locked"
            connect_args={"timeout": settings.lock_wait_timeout_seconds},
        )
        _enable_immediate_transactions(engine, settings.lock_wait_timeout_seconds)
        return engine

    return create_async_engine(
        url,
        # Connection pool configuration for concurrent access
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.database_echo,
        connect_args={
            "server_settings": {
                "application_name": "barber_booking_platform",
            }
        }
    )


def _enable_immediate_transactions(engine: AsyncEngine, default_lock_wait: float) -> None:
    """
    Open every SQLite transaction with ``BEGIN IMMEDIATE``.

    The driver's own deferred BEGIN lets two transactions read the same
    snapshot before either writes. Taking the write lock up front makes
    check-then-insert sequences serialize on the database. The busy timeout
    is reset before each BEGIN from the connection's ``LOCK_WAIT_OPTION``,
    see ``bound_lock_wait``.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        lock_wait = conn.get_execution_options().get(LOCK_WAIT_OPTION)
        if lock_wait is None:
            lock_wait = default_lock_wait
        conn.exec_driver_sql(f"PRAGMA busy_timeout = {max(int(lock_wait * 1000), 1)}")
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async def bound_lock_wait(session: AsyncSession, timeout: Optional[float]) -> None:
    """
    Check out the session's connection with ``timeout`` as its lock wait.

    Must run before the first statement of the transaction. On SQLite the
    value becomes the busy timeout of the ``BEGIN IMMEDIATE``; PostgreSQL
    bounds row-lock waits with ``SET LOCAL lock_timeout`` instead.
    """
    await session.connection(execution_options={LOCK_WAIT_OPTION: timeout})


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session factory for database sessions."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=True,
    )


class DatabaseManager:
    """Database manager for handling connections and sessions."""

    def __init__(self, settings: Settings, database_url: Optional[str] = None):
        self.settings = settings
        self.database_url = database_url
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    async def initialize(self, create_tables: bool = True) -> None:
        """Initialize the database manager."""
        logger.info("Initializing database connection...")
        self.engine = create_database_engine(self.settings, self.database_url)
        self.session_factory = create_session_factory(self.engine)

        if create_tables:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        logger.info("Database manager initialized")

    async def close(self) -> None:
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database manager closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session.

        Transactions are demarcated by the caller with ``session.begin()``.
        """
        if self.session_factory is None:
            raise RuntimeError("Database manager not initialized")

        async with self.session_factory() as session:
            yield session

    async def ping(self) -> bool:
        """Check database connectivity."""
        if self.engine is None:
            return False
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
