"""PostgreSQL implementation of DependencyRepository.

Uses psycopg 3 (sync mode) with psycopg_pool.ConnectionPool for
connection management.  Schema is identical to SQLite (TEXT columns
with JSON serialisation, not JSONB) for migration simplicity.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from policygraph.adapters.base_store import SCHEMA, BaseDependencyStore


class PostgresStore(BaseDependencyStore):
    """DependencyRepository backed by PostgreSQL via psycopg 3 + connection pool."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        run_schema: bool = True,
    ) -> None:
        self._dsn = dsn
        self._pool = ConnectionPool(
            dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row},
        )
        if run_schema:
            self._apply_schema()

    def _apply_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._pool.connection() as conn:
            conn.execute(SCHEMA)
            conn.commit()

    @property
    def dsn(self) -> str:
        return self._dsn

    def close(self) -> None:
        self._pool.close()

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        with self._pool.connection() as conn:
            yield conn

    @property
    def _ph(self) -> str:
        return "%s"

    @property
    def _excluded_prefix(self) -> str:
        return "EXCLUDED"

    @property
    def _integrity_error(self) -> type[Exception]:
        return psycopg.IntegrityError
