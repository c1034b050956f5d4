"""Open the dependency store named by arguments or ``POLICYGRAPH_DB_*``.

Explicit arguments win over the environment; see ``policygraph.defaults``
for the variables and their defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from policygraph import defaults
from policygraph.ports import DependencyRepository

log = logging.getLogger("policygraph.store")


def _open_sqlite(db_path: str | Path | None, dsn: str | None, **kwargs: Any) -> DependencyRepository:
    from policygraph.adapters.sqlite_store import SqliteStore

    path = Path(db_path or defaults.sqlite_path())
    store = SqliteStore(path)
    log.info("Opened SQLite dependency store at %s", path)
    return store


def _open_postgres(db_path: str | Path | None, dsn: str | None, **kwargs: Any) -> DependencyRepository:
    from policygraph.adapters.postgres_store import PostgresStore

    pg_dsn = dsn or defaults.postgres_dsn()
    if not pg_dsn:
        raise ValueError("The postgres backend needs a DSN: pass --dsn or set POLICYGRAPH_PG_DSN")
    min_size, max_size = defaults.postgres_pool_size()
    kwargs.setdefault("min_size", min_size)
    kwargs.setdefault("max_size", max(kwargs["min_size"], max_size))
    store = PostgresStore(pg_dsn, **kwargs)
    log.info("Opened PostgreSQL dependency store (pool %d-%d)",
             kwargs["min_size"], kwargs["max_size"])
    return store


_OPENERS: dict[str, Callable[..., DependencyRepository]] = {
    "sqlite": _open_sqlite,
    "postgres": _open_postgres,
}


def create_store(
    *,
    backend: str | None = None,
    db_path: str | Path | None = None,
    dsn: str | None = None,
    **kwargs: Any,
) -> DependencyRepository:
    """Return a ready ``DependencyRepository``; the caller owns ``close()``.

    *kwargs* reach the store constructor (pool sizes for postgres).
    """
    name = (backend or defaults.storage_backend()).lower()
    opener = _OPENERS.get(name)
    if opener is None:
        raise ValueError(
            f"Unknown backend {name!r}; choose one of: {', '.join(defaults.STORAGE_BACKENDS)}"
        )
    return opener(db_path, dsn, **kwargs)
