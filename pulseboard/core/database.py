# pulseboard/core/database.py
"""
Database connection manager for Pulseboard.
Handles async PostgreSQL connections with pooling, retry logic, and transactions.

All other modules go through the shared manager:
    from pulseboard.core.database import db_manager

    row = await db_manager.fetch_one("SELECT * FROM tenants WHERE domain = $1", domain)
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

import asyncpg

from config.settings import settings

logger = logging.getLogger(__name__)

__all__ = [
    'DatabaseManager',
    'db_manager',
]

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAY_BASE = 0.1  # seconds, doubled per attempt

# Transient errors that should trigger retry
TRANSIENT_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.InternalClientError,
    ConnectionResetError,
    ConnectionRefusedError,
    TimeoutError,
)


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSONB columns to Python objects on every pooled connection."""
    await conn.set_type_codec(
        'jsonb',
        encoder=json.dumps,
        decoder=json.loads,
        schema='pg_catalog'
    )


class DatabaseManager:
    """
    Manages database connection pool and operations.

    This is a singleton - import db_manager to access it.
    Never create direct asyncpg connections; always use this manager.
    """

    def __init__(self, dsn: Optional[str] = None):
        self._dsn = dsn
        self.pool: Optional[asyncpg.Pool] = None
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Initialize database connection pool."""
        if self.pool is not None:
            return

        async with self._connect_lock:
            if self.pool is not None:
                return
            try:
                self.pool = await asyncpg.create_pool(
                    self._dsn or settings.database_url,
                    min_size=2,
                    max_size=10,
                    command_timeout=60,
                    init=_init_connection
                )
                logger.info("Database connection pool established")
            except Exception as e:
                logger.error(f"Failed to create database pool: {e}")
                raise

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    async def get_connection(self) -> asyncpg.Connection:
        """Get database connection from pool."""
        if not self.pool:
            await self.connect()
        return await self.pool.acquire()

    async def release_connection(self, conn: asyncpg.Connection) -> None:
        """Release connection back to pool."""
        if self.pool:
            await self.pool.release(conn)

    # =========================================================================
    # Query Execution with Retry Logic
    # =========================================================================

    async def _execute_with_retry(
        self,
        operation: str,
        query: str,
        args: tuple,
        fetch_method: str
    ) -> Any:
        """
        Execute a database operation with automatic retry on transient failures.

        Args:
            operation: Description for logging (e.g., "fetch_one", "execute")
            query: SQL query string
            args: Query parameters
            fetch_method: Method to call on connection ("fetch", "fetchrow", "execute")
        """
        last_error = None

        for attempt in range(MAX_RETRIES):
            conn = None
            try:
                conn = await self.get_connection()
                method = getattr(conn, fetch_method)
                return await method(query, *args)

            except TRANSIENT_ERRORS as e:
                last_error = e

                if attempt < MAX_RETRIES - 1:
                    delay = RETRY_DELAY_BASE * (2 ** attempt)
                    logger.warning(
                        f"Database {operation} failed (attempt {attempt + 1}/{MAX_RETRIES}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

                    if isinstance(e, (asyncpg.PostgresConnectionError, ConnectionResetError)):
                        # The connection belongs to the pool being closed
                        if conn:
                            await self.release_connection(conn)
                            conn = None
                        await self._reset_pool()
                else:
                    logger.error(f"Database {operation} failed after {MAX_RETRIES} attempts: {e}")

            except Exception as e:
                # Non-transient error - don't retry
                logger.error(f"Database {operation} error: {e}")
                raise

            finally:
                if conn:
                    await self.release_connection(conn)

        raise last_error

    async def _reset_pool(self) -> None:
        """Reset the connection pool after connection failures."""
        logger.info("Resetting database connection pool...")
        try:
            if self.pool:
                await self.pool.close()
                self.pool = None
            await self.connect()
        except Exception as e:
            logger.error(f"Failed to reset pool: {e}")

    async def fetch_one(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch single row from query."""
        return await self._execute_with_retry("fetch_one", query, args, "fetchrow")

    async def fetch_all(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all rows from query."""
        return await self._execute_with_retry("fetch_all", query, args, "fetch")

    async def execute(self, query: str, *args) -> str:
        """Execute query without returning results."""
        return await self._execute_with_retry("execute", query, args, "execute")

    # =========================================================================
    # Transaction Support
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        """
        Context manager for database transactions.

        Usage:
            async with db_manager.transaction() as conn:
                await conn.execute("INSERT INTO tenants ...")
                await conn.execute("INSERT INTO clients ...")
                # Both succeed or both rollback on error
        """
        conn = await self.get_connection()
        tx = conn.transaction()

        try:
            await tx.start()
            yield conn
            await tx.commit()

        except Exception as e:
            await tx.rollback()
            logger.warning(f"Transaction rolled back: {e}")
            raise

        finally:
            await self.release_connection(conn)

    # =========================================================================
    # Health Check
    # =========================================================================

    async def health_check(self) -> dict:
        """Check database connectivity and pool status."""
        try:
            result = await self.fetch_one("SELECT 1 as ok, NOW() as server_time")

            pool_info = {}
            if self.pool:
                pool_info = {
                    "pool_size": self.pool.get_size(),
                    "pool_free": self.pool.get_idle_size(),
                }

            return {
                "status": "healthy",
                "connected": True,
                "server_time": result["server_time"].isoformat() if result else None,
                **pool_info
            }

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e)
            }


# Global database manager instance
db_manager = DatabaseManager()
