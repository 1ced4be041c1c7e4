"""
Inventory Database Configuration

Database connection management with:
- Connection pooling sized from settings
- Connection retry logic with exponential backoff on the startup probe
- Schema creation at startup (no migrations)
- Pool metrics collection and monitoring
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Any, Optional

import asyncpg
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy import text
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
import structlog
from prometheus_client import Histogram, Counter

from .config import Settings
from ..models import Base

logger = structlog.get_logger()

DB_CONNECTION_DURATION = Histogram(
    "inventory_db_connection_duration_seconds",
    "Time spent establishing the database connection at startup",
)
DB_FAILED_CONNECTIONS = Counter(
    "inventory_db_failed_connections_total",
    "Total number of failed database connection attempts",
)
DB_SESSION_DURATION = Histogram(
    "inventory_db_session_duration_seconds",
    "Lifetime of request-scoped database sessions",
)

_RETRYABLE_ERRORS = (
    asyncpg.PostgresConnectionError,
    OperationalError,
    InterfaceError,
    ConnectionError,
    OSError,
)


class DatabaseManager:
    """
    Database connection manager.

    Owns the engine and the session factory for the lifetime of the
    application; request handlers only ever see sessions.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.settings.debug}
        if self.settings.database_url.startswith("postgresql"):
            kwargs.update(
                pool_size=self.settings.DATABASE_POOL_SIZE,
                max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=self.settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=self.settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,  # Validate connections before use
                connect_args={
                    "command_timeout": 60,
                    "server_settings": {
                        "application_name": self.settings.SERVICE_NAME,
                    },
                },
            )
        return kwargs

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        before_sleep=lambda retry_state: logger.warning(
            "Database connection retry",
            attempt=retry_state.attempt_number,
            wait_time=retry_state.next_action.sleep,
        ),
        reraise=True,
    )
    async def _probe_with_retry(self) -> None:
        """Check connectivity with a trivial query, retrying on connection errors."""
        start_time = time.time()
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            DB_FAILED_CONNECTIONS.inc()
            logger.error(
                "Database connectivity probe failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        DB_CONNECTION_DURATION.observe(time.time() - start_time)

    async def initialize(self) -> None:
        """Create the engine, verify connectivity and create tables."""
        self.engine = create_async_engine(
            self.settings.database_url, **self._engine_kwargs()
        )
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,  # Manual control for performance
        )

        await self._probe_with_retry()

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database initialized successfully",
            pool_size=self.settings.DATABASE_POOL_SIZE,
            max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get database session with transaction management.

        Yields:
            AsyncSession: committed on success, rolled back on error
        """
        if not self.session_factory:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        start_time = time.time()

        try:
            async with self.session_factory() as session:
                try:
                    yield session
                    await session.commit()

                except Exception as e:
                    await session.rollback()

                    logger.debug(
                        "Database transaction rolled back",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise
        finally:
            DB_SESSION_DURATION.observe(time.time() - start_time)

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dict with health status and pool details
        """
        if not self.engine:
            return {"status": "not_initialized"}

        start_time = time.time()
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
            "pool": self.engine.pool.status(),
        }

    async def close(self) -> None:
        """Close database connections and cleanup resources."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self.session_factory = None
