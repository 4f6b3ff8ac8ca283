"""PostgreSQL database client for local development.

Provides a connection pool and query helpers so the account repositories can
run against a local PostgreSQL database instead of Supabase. Every statement
runs under ``POSTGRES_STATEMENT_TIMEOUT_MS`` so a stuck query surfaces as a
failure instead of blocking the request.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Generator

try:
    import psycopg2
    from psycopg2 import pool
    from psycopg2.extras import Json, RealDictCursor
except ImportError:  # pragma: no cover
    psycopg2 = None  # type: ignore
    pool = None  # type: ignore
    Json = None  # type: ignore
    RealDictCursor = None  # type: ignore

logger = logging.getLogger(__name__)


class PostgresClient:
    """PostgreSQL database client with connection pooling."""

    def __init__(self) -> None:
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled and psycopg2 is not None:
            timeout_ms = int(os.getenv("POSTGRES_STATEMENT_TIMEOUT_MS", "5000"))
            try:
                self._pool = pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=int(os.getenv("POSTGRES_POOL_MAX", "10")),
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "planora"),
                    user=os.getenv("POSTGRES_USER", "planora"),
                    password=os.getenv("POSTGRES_PASSWORD", "planora_dev_password"),
                    connect_timeout=int(os.getenv("POSTGRES_CONNECT_TIMEOUT", "5")),
                    options=f"-c statement_timeout={timeout_ms}",
                )
            except Exception as exc:  # pragma: no cover
                raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc
            logger.info("PostgreSQL pool ready (statement timeout %sms)", timeout_ms)

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """Get a database connection from the pool.

        Commits on clean exit and rolls back when the block raises.

        Raises:
            RuntimeError: If local database is not enabled.
        """
        if not self.enabled or self._pool is None:
            raise RuntimeError("Local PostgreSQL database is not enabled")

        conn = None
        try:
            conn = self._pool.getconn()
            yield conn
            conn.commit()
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self._pool.putconn(conn)

    @contextmanager
    def get_cursor(self, dict_cursor: bool = True) -> Generator[Any, None, None]:
        with self.get_connection() as conn:
            cursor_factory = RealDictCursor if dict_cursor else None
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row, or None."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_many(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a query and return every row."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute_returning(self, query: str, params: tuple = ()) -> dict[str, Any]:
        """Execute an INSERT/UPDATE with a RETURNING clause.

        Raises:
            LookupError: If the statement touched no row.
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            result = cursor.fetchone()
            if not result:
                raise LookupError("Statement did not return a row")
            return dict(result)

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Execute an UPDATE or DELETE and return the affected row count."""
        with self.get_cursor(dict_cursor=False) as cursor:
            cursor.execute(query, params)
            return cursor.rowcount


def as_json(value: dict[str, Any]) -> Any:
    """Adapt a dict for a JSONB parameter."""
    return Json(value) if Json is not None else value


def is_transient_pg_error(exc: BaseException) -> bool:
    return psycopg2 is not None and isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError))


# Singleton instance
_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Get PostgreSQL client singleton, or None when local DB mode is off."""
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
