"""
Shared plumbing for the storage classes.

Each storage class borrows a pooled connection per operation. psycopg2 and the
pool are blocking, so every statement runs in a worker thread through
asyncio.to_thread and the event loop never waits on the database.

Any driver failure (connection refused, pool exhausted, constraint or data
error, a value psycopg2 cannot encode) is re-raised as UpstreamUnavailable so
callers can tell "row absent" apart from "store failed".
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from db.connection_pool import get_db_connection
from db.db_config import get_db_config, validate_db_config
from utils.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

FETCH_ONE = "one"
FETCH_ALL = "all"
ROWCOUNT = "rowcount"


class BaseStorage:
    def __init__(self, db_config: dict | None = None) -> None:
        if db_config is None:
            is_valid, error_message = validate_db_config()
            if not is_valid:
                raise ValueError(error_message)
            db_config = get_db_config()
        self.db_config = db_config

    def _get_connection(self):
        """Get database connection (pooled or direct based on feature flag)"""
        return get_db_connection(self.db_config)

    @contextmanager
    def _cursor(self, operation: str, *, commit: bool = False) -> Iterator[RealDictCursor]:
        """
        Yield a RealDictCursor inside a connection borrowed for one operation.

        Args:
            operation: Name used in logs and in UpstreamUnavailable details
            commit: Commit the transaction when the block finishes
        """
        try:
            with self._get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    yield cur
                if commit:
                    conn.commit()
        except (psycopg2.Error, pool.PoolError) as exc:
            logger.error("Database error during %s: %s", operation, exc, exc_info=True)
            raise UpstreamUnavailable("database", operation, str(exc).strip() or type(exc).__name__) from exc
        except ValueError as exc:
            # psycopg2 raises a bare ValueError for NUL bytes in string parameters
            logger.error("Database rejected parameters for %s: %s", operation, exc)
            raise UpstreamUnavailable("database", operation, str(exc)) from exc

    def _execute_sync(
        self,
        operation: str,
        sql: str,
        params: Optional[Sequence[Any]],
        fetch: str,
        commit: bool,
    ) -> Any:
        with self._cursor(operation, commit=commit) as cur:
            cur.execute(sql, params)
            if fetch == FETCH_ONE:
                return cur.fetchone()
            if fetch == FETCH_ALL:
                return cur.fetchall()
            return cur.rowcount

    async def _fetch_one(self, operation: str, sql: str, params=None, *, commit: bool = False):
        """Run one statement off the event loop and return its first row (or None)."""
        return await asyncio.to_thread(self._execute_sync, operation, sql, params, FETCH_ONE, commit)

    async def _fetch_all(self, operation: str, sql: str, params=None) -> list:
        return await asyncio.to_thread(self._execute_sync, operation, sql, params, FETCH_ALL, False)

    async def _execute(self, operation: str, sql: str, params=None, *, commit: bool = True) -> int:
        """Run a write off the event loop. Returns the affected row count."""
        return await asyncio.to_thread(self._execute_sync, operation, sql, params, ROWCOUNT, commit)


__all__ = ["BaseStorage"]
