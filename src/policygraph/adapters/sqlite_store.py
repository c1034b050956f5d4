"""SQLite implementation of DependencyRepository.

Connections are opened per call; WAL mode lets concurrent readers proceed
while a writer holds the lock.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from policygraph.adapters.base_store import SCHEMA, BaseDependencyStore


class SqliteStore(BaseDependencyStore):
    """DependencyRepository backed by a single SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        pass  # connections are per-call; nothing to tear down

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    @property
    def _ph(self) -> str:
        return "?"

    @property
    def _excluded_prefix(self) -> str:
        return "excluded"

    @property
    def _integrity_error(self) -> type[Exception]:
        return sqlite3.IntegrityError
