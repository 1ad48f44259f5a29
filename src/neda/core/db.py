# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Database connection management for NEDA.

A ``Database`` owns one psycopg2 connection pool. It is constructed once at
startup and handed to the store; nothing in this module keeps a global pool.

Usage:
    db = Database(get_config())
    with db.cursor() as cur:
        cur.execute("SELECT * FROM api_keys")
        rows = cur.fetchall()
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError

from .config import CoreSettings, get_config
from .exceptions import UpstreamFailure

logger = logging.getLogger(__name__)

# Errors that mean the store itself is unreachable or timed out
UPSTREAM_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError, PoolError)


def _get_conn_with_timeout(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a connection from pool with timeout.

    Raises:
        PoolError: If timeout expires before connection is available
    """
    result_queue: queue.Queue = queue.Queue()

    def _get_conn():
        try:
            conn = pool.getconn()
            result_queue.put(("success", conn))
        except Exception as e:
            result_queue.put(("error", e))

    thread = threading.Thread(target=_get_conn, daemon=True)
    thread.start()

    try:
        result_type, result_value = result_queue.get(timeout=timeout)
        if result_type == "error":
            raise result_value
        return result_value
    except queue.Empty:
        raise PoolError(f"Connection pool timeout after {timeout} seconds")


def _validate_connection(conn: Any) -> bool:
    """Check if a connection is valid and healthy."""
    if conn.closed:
        return False

    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        return True
    except psycopg2.Error:
        return False


class Database:
    """Explicitly constructed handle around a psycopg2 connection pool.

    Args:
        settings: Core settings (defaults to the global config).
        pool: Pre-built pool, mainly for tests.
    """

    def __init__(
        self,
        settings: CoreSettings | None = None,
        pool: psycopg2_pool.ThreadedConnectionPool | None = None,
    ):
        self.settings = settings or get_config()
        self._pool = pool
        self._pool_lock = threading.Lock()

    def _get_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Get or create the connection pool."""
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    try:
                        self._pool = psycopg2_pool.ThreadedConnectionPool(
                            options=f"-c statement_timeout={self.settings.db_statement_timeout_ms}",
                            **self.settings.pool_config,
                            **self.settings.connection_params,
                        )
                    except psycopg2.OperationalError as e:
                        raise UpstreamFailure(f"Database unavailable: {e}", operation="connect") from e
        return self._pool

    def _get_healthy_connection(self) -> Any:
        """Get a healthy connection from the pool, discarding stale ones."""
        pool = self._get_pool()
        max_attempts = 3
        for _ in range(max_attempts):
            try:
                conn = _get_conn_with_timeout(pool, self.settings.db_pool_timeout)
            except UPSTREAM_ERRORS as e:
                raise UpstreamFailure(f"Database unavailable: {e}", operation="acquire") from e
            if _validate_connection(conn):
                return conn
            # Stale connection: drop it and retry
            pool.putconn(conn, close=True)

        raise UpstreamFailure("Failed to get healthy connection after multiple attempts", operation="acquire")

    @contextmanager
    def connection(self) -> Generator[Any, None, None]:
        """Get a raw pooled connection (migrations need connection-level control)."""
        conn = self._get_healthy_connection()
        try:
            yield conn
        finally:
            self._get_pool().putconn(conn)

    @contextmanager
    def cursor(self) -> Generator[Any, None, None]:
        """Get a cursor inside one transaction: commit on success, rollback on error.

        Connection failures and statement timeouts surface as ``UpstreamFailure``;
        every other exception propagates unchanged after the rollback.
        """
        conn = self._get_healthy_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except UPSTREAM_ERRORS as e:
            _safe_rollback(conn)
            raise UpstreamFailure(f"Database error: {e}") from e
        except BaseException:
            _safe_rollback(conn)
            raise
        finally:
            self._get_pool().putconn(conn)

    def check_connection(self) -> bool:
        """Check if database connection is working."""
        try:
            with self.cursor() as cur:
                cur.execute("SELECT 1")
            return True
        except UpstreamFailure:
            return False

    def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None


def _safe_rollback(conn: Any) -> None:
    if conn.closed:
        return
    try:
        conn.rollback()
    except psycopg2.Error:
        logger.warning("Rollback failed on a broken connection", exc_info=True)


def generate_id() -> str:
    """Generate a UUID for database records."""
    return str(uuid.uuid4())

