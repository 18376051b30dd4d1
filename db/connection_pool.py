"""
Database Connection Pool Manager
=================================

Provides a centralized, thread-safe psycopg2 connection pool for the storage
classes in db/storage/.

Features:
- ThreadedConnectionPool shared per process (singleton per db_config)
- Retry with exponential backoff on connection failures
- Feature flag control via USE_CONNECTION_POOLING env var
- Stale connection detection before handing a connection out
- Rollback of any open transaction when a block raises

Usage:
    from db.connection_pool import get_db_connection

    with get_db_connection(db_config) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        conn.commit()
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import psycopg2
from psycopg2 import pool
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

USE_CONNECTION_POOLING = os.getenv("USE_CONNECTION_POOLING", "true").lower() in ("true", "1", "yes")

MIN_CONNECTIONS = int(os.getenv("DB_POOL_MIN_CONNECTIONS", "1"))
MAX_CONNECTIONS = int(os.getenv("DB_POOL_MAX_CONNECTIONS", "10"))

# Connection timeout (seconds)
CONNECTION_TIMEOUT = int(os.getenv("DB_CONNECTION_TIMEOUT", "30"))

MAX_RETRIES = int(os.getenv("DB_MAX_RETRIES", "3"))
RETRY_DELAY_BASE = float(os.getenv("DB_RETRY_DELAY_BASE", "2.0"))


# =============================================================================
# GLOBAL POOL INSTANCE
# =============================================================================

_pool: Optional[pool.ThreadedConnectionPool] = None
_pool_lock = Lock()
_pool_config: Optional[dict] = None


def _get_pool(db_config: dict) -> pool.ThreadedConnectionPool:
    """Get or lazily create the process-wide pool for db_config."""
    global _pool, _pool_config

    with _pool_lock:
        if _pool is not None and _pool_config == db_config:
            return _pool

        if _pool is not None:
            logger.info("Database config changed, closing existing pool")
            _pool.closeall()
            _pool = None

        pool_config = {**db_config, "connect_timeout": CONNECTION_TIMEOUT}
        _pool = pool.ThreadedConnectionPool(MIN_CONNECTIONS, MAX_CONNECTIONS, **pool_config)
        _pool_config = db_config

        logger.info(
            "Database connection pool initialized: min=%d, max=%d, timeout=%ds, host=%s",
            MIN_CONNECTIONS,
            MAX_CONNECTIONS,
            CONNECTION_TIMEOUT,
            db_config.get("host"),
        )
        return _pool


def _create_direct_connection(db_config: dict):
    """Create a direct (unpooled) connection."""
    return psycopg2.connect(**{**db_config, "connect_timeout": CONNECTION_TIMEOUT})


def _retry_connection(db_config: dict, use_pool: bool = True):
    """
    Get a connection with retries and exponential backoff.

    Raises:
        psycopg2.OperationalError: If all retries fail
        pool.PoolError: If the pool stays exhausted
    """
    last_exception: Exception | None = None

    # Pool exhaustion usually clears quickly, so allow more attempts
    max_attempts = MAX_RETRIES * 2 if use_pool else MAX_RETRIES

    for attempt in range(1, max_attempts + 1):
        try:
            if use_pool:
                return _get_pool(db_config).getconn()
            return _create_direct_connection(db_config)

        except pool.PoolError as exc:
            last_exception = exc
            if attempt < max_attempts:
                delay = min(1.0 * attempt, 5.0)
                logger.warning(
                    "Connection pool exhausted (attempt %d/%d). Waiting %.1fs...",
                    attempt,
                    max_attempts,
                    delay,
                )
                time.sleep(delay)

        except psycopg2.OperationalError as exc:
            last_exception = exc
            if attempt < max_attempts:
                delay = RETRY_DELAY_BASE ** min(attempt, 3)
                logger.warning(
                    "Database connection failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    attempt,
                    max_attempts,
                    exc,
                    delay,
                )
                time.sleep(delay)

    logger.error("Database connection failed after %d attempts: %s", max_attempts, last_exception)
    raise last_exception


class DatabaseConnection:
    """
    Context manager for database connections with automatic cleanup.

    Connections are validated before use and returned to the pool on exit.
    An exception inside the block rolls back the open transaction first, so a
    failed INSERT never poisons the next borrower of the connection.

    Usage:
        with DatabaseConnection(db_config) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT * FROM table")
    """

    def __init__(self, db_config: dict):
        self.db_config = db_config
        self.conn = None
        self._use_pool = USE_CONNECTION_POOLING

    @staticmethod
    def _is_connection_valid(conn) -> bool:
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
            conn.rollback()
            return True
        except psycopg2.Error:
            return False

    def __enter__(self):
        self.conn = _retry_connection(self.db_config, use_pool=self._use_pool)

        if not self._is_connection_valid(self.conn):
            logger.warning("Stale connection detected, replacing with a direct connection")
            if self._use_pool:
                _get_pool(self.db_config).putconn(self.conn, close=True)
            self.conn = _create_direct_connection(self.db_config)
            self._use_pool = False

        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.conn is None:
            return False

        if exc_type is not None and not self.conn.closed:
            try:
                self.conn.rollback()
            except psycopg2.Error as exc:
                logger.warning("Rollback after failed block also failed: %s", exc)

        try:
            if self._use_pool:
                _get_pool(self.db_config).putconn(self.conn)
            else:
                self.conn.close()
        except (psycopg2.Error, pool.PoolError) as exc:
            logger.error("Error cleaning up connection: %s", exc, exc_info=True)

        # Don't suppress exceptions
        return False


# =============================================================================
# PUBLIC API
# =============================================================================

def get_db_connection(db_config: dict) -> DatabaseConnection:
    """
    Get a database connection context manager (pooled or direct based on feature flag).

    Usage:
        with get_db_connection(db_config) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT ...")
    """
    return DatabaseConnection(db_config)


def close_all_connections() -> None:
    """Close all pooled connections (call on application shutdown)."""
    global _pool, _pool_config

    with _pool_lock:
        if _pool is not None:
            logger.info("Closing all database connections in pool")
            _pool.closeall()
            _pool = None
            _pool_config = None


def get_pool_stats() -> dict:
    """Basic pool configuration, exposed on the readiness endpoint."""
    if not USE_CONNECTION_POOLING or _pool is None:
        return {
            "pooling_enabled": USE_CONNECTION_POOLING,
            "pool_initialized": False,
        }

    return {
        "pooling_enabled": True,
        "pool_initialized": True,
        "min_connections": MIN_CONNECTIONS,
        "max_connections": MAX_CONNECTIONS,
        "connection_timeout": CONNECTION_TIMEOUT,
        "max_retries": MAX_RETRIES,
    }
