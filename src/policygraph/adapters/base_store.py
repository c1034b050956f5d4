"""Base class for DependencyRepository backends (template method pattern).

All shared SQL lives here.  Backend-specific concerns (connection
management, SQL placeholders, constraint-error type) are handled by a small
set of abstract members that subclasses implement.

Application code should depend on the ports, not on this module directly.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from policygraph.errors import DuplicateDependencyError
from policygraph.models import (
    DependencyStrength,
    DependentMetadata,
    DependentType,
    Policy,
    PolicyDependency,
    now_iso,
)


# ---------------------------------------------------------------------------
# Schema (shared between all backends)
# ---------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS policies (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL DEFAULT '',
    category    TEXT NOT NULL DEFAULT '',
    version     TEXT NOT NULL DEFAULT '1.0',
    created_at  TEXT NOT NULL,
    updated_at  TEXT
);

CREATE TABLE IF NOT EXISTS policy_dependencies (
    id                  TEXT PRIMARY KEY,
    policy_id           TEXT NOT NULL,
    dependent_type      TEXT NOT NULL,
    dependent_id        TEXT NOT NULL,
    dependency_strength TEXT NOT NULL,
    notes               TEXT,
    metadata            TEXT NOT NULL DEFAULT '{}',
    created_by          TEXT NOT NULL DEFAULT 'system',
    created_at          TEXT NOT NULL,
    updated_at          TEXT,
    UNIQUE (policy_id, dependent_type, dependent_id)
);
CREATE INDEX IF NOT EXISTS idx_deps_policy ON policy_dependencies(policy_id);

CREATE TABLE IF NOT EXISTS dependent_metadata (
    dependent_type TEXT NOT NULL,
    dependent_id   TEXT NOT NULL,
    name           TEXT NOT NULL,
    department     TEXT,
    is_critical    INTEGER NOT NULL DEFAULT 0,
    updated_at     TEXT NOT NULL,
    PRIMARY KEY (dependent_type, dependent_id)
);
"""

_UPDATABLE_COLS = {"dependency_strength", "notes", "metadata"}

# strong first, then medium, then weak
_STRENGTH_ORDER_SQL = (
    "CASE dependency_strength WHEN 'strong' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END"
)


# ---------------------------------------------------------------------------
# BaseDependencyStore
# ---------------------------------------------------------------------------

class BaseDependencyStore(ABC):
    """Abstract base for DependencyRepository backends.

    Subclasses implement 4 abstract members capturing the differences
    between SQL backends (connection lifecycle, placeholder syntax,
    upsert keyword, constraint-error type) plus ``close``.
    """

    # ------------------------------------------------------------------
    # Abstract template methods (what varies per backend)
    # ------------------------------------------------------------------

    @abstractmethod
    def _connection(self):
        """Context manager yielding an open database connection.

        Subclasses should decorate with ``@contextmanager`` and yield a
        connection that supports ``.execute()``, ``.commit()``,
        ``.rollback()``, and cursor ``.fetchone()``/``.fetchall()``.
        """

    @property
    @abstractmethod
    def _ph(self) -> str:
        """SQL parameter placeholder: ``'?'`` for SQLite, ``'%s'`` for PostgreSQL."""

    @property
    @abstractmethod
    def _excluded_prefix(self) -> str:
        """Upsert EXCLUDED reference: ``'excluded'`` or ``'EXCLUDED'``."""

    @property
    @abstractmethod
    def _integrity_error(self) -> type[Exception]:
        """Exception type for unique constraint violations."""

    @abstractmethod
    def close(self) -> None: ...

    # ------------------------------------------------------------------
    # Concrete helpers
    # ------------------------------------------------------------------

    def _placeholders(self, n: int) -> str:
        """Return *n* comma-separated parameter placeholders."""
        return ", ".join([self._ph] * n)

    @staticmethod
    def _row_to_dependency(row: Any) -> PolicyDependency:
        d = dict(row)
        meta = d.get("metadata") or "{}"
        return PolicyDependency(
            id=d["id"],
            policy_id=d["policy_id"],
            dependent_type=DependentType(d["dependent_type"]),
            dependent_id=d["dependent_id"],
            dependency_strength=DependencyStrength(d["dependency_strength"]),
            notes=d.get("notes"),
            metadata=json.loads(meta) if isinstance(meta, str) else meta,
            created_by=d.get("created_by") or "system",
            created_at=d["created_at"],
        )

    # ------------------------------------------------------------------
    # DependencyStorePort
    # ------------------------------------------------------------------

    def list_dependencies(self, policy_id: str) -> list[PolicyDependency]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM policy_dependencies WHERE policy_id = {self._ph} "
                f"ORDER BY {_STRENGTH_ORDER_SQL}, created_at, dependent_type, dependent_id",
                (policy_id,),
            ).fetchall()
        return [self._row_to_dependency(r) for r in rows]

    def dependency_exists(
        self, policy_id: str, dependent_type: DependentType, dependent_id: str,
    ) -> bool:
        ph = self._ph
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT 1 AS hit FROM policy_dependencies "
                f"WHERE policy_id = {ph} AND dependent_type = {ph} AND dependent_id = {ph}",
                (policy_id, DependentType(dependent_type).value, dependent_id),
            ).fetchone()
        return row is not None

    def insert_dependency(self, dependency: PolicyDependency) -> PolicyDependency:
        with self._connection() as conn:
            try:
                conn.execute(
                    f"INSERT INTO policy_dependencies (id, policy_id, dependent_type, "
                    f"dependent_id, dependency_strength, notes, metadata, created_by, "
                    f"created_at, updated_at) VALUES ({self._placeholders(10)})",
                    (
                        dependency.id,
                        dependency.policy_id,
                        dependency.dependent_type.value,
                        dependency.dependent_id,
                        dependency.dependency_strength.value,
                        dependency.notes,
                        json.dumps(dependency.metadata),
                        dependency.created_by,
                        dependency.created_at,
                        dependency.created_at,
                    ),
                )
                conn.commit()
            except self._integrity_error:
                conn.rollback()
                raise DuplicateDependencyError(*dependency.key) from None
        return dependency

    def get_dependency(self, dependency_id: str) -> PolicyDependency | None:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM policy_dependencies WHERE id = {self._ph}",
                (dependency_id,),
            ).fetchone()
        return self._row_to_dependency(row) if row else None

    def update_dependency(self, dependency_id: str, **fields: Any) -> PolicyDependency | None:
        ph = self._ph
        sets: list[str] = []
        params: list[Any] = []
        for col, val in fields.items():
            if col not in _UPDATABLE_COLS:
                raise ValueError(f"Invalid update column: {col}")
            if col == "dependency_strength":
                val = DependencyStrength(val).value
            elif col == "metadata":
                val = json.dumps(val or {})
            sets.append(f"{col} = {ph}")
            params.append(val)
        if sets:
            sets.append(f"updated_at = {ph}")
            params.extend([now_iso(), dependency_id])
            with self._connection() as conn:
                conn.execute(
                    f"UPDATE policy_dependencies SET {', '.join(sets)} WHERE id = {ph}",
                    params,
                )
                conn.commit()
        return self.get_dependency(dependency_id)

    def delete_dependency(self, dependency_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM policy_dependencies WHERE id = {self._ph}",
                (dependency_id,),
            )
            conn.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # PolicyStorePort
    # ------------------------------------------------------------------

    def upsert_policy(self, policy: Policy) -> None:
        ex = self._excluded_prefix
        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO policies (id, title, category, version, created_at, updated_at) "
                f"VALUES ({self._placeholders(6)}) "
                f"ON CONFLICT(id) DO UPDATE SET title={ex}.title, category={ex}.category, "
                f"version={ex}.version, updated_at={ex}.updated_at",
                (policy.id, policy.title, policy.category, policy.version,
                 policy.created_at, now_iso()),
            )
            conn.commit()

    def get_policy(self, policy_id: str) -> Policy | None:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM policies WHERE id = {self._ph}", (policy_id,),
            ).fetchone()
        if row is None:
            return None
        d = dict(row)
        return Policy(
            id=d["id"], title=d["title"], category=d["category"],
            version=d["version"], created_at=d["created_at"],
        )

    def policy_exists(self, policy_id: str) -> bool:
        """A policy is known if registered or if any edge originates from it."""
        ph = self._ph
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT 1 AS hit FROM policies WHERE id = {ph}", (policy_id,),
            ).fetchone()
            if row is None:
                row = conn.execute(
                    f"SELECT 1 AS hit FROM policy_dependencies WHERE policy_id = {ph} LIMIT 1",
                    (policy_id,),
                ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # DependentMetadataPort
    # ------------------------------------------------------------------

    def get_dependent_metadata(
        self, dependent_type: DependentType, dependent_id: str,
    ) -> DependentMetadata | None:
        ph = self._ph
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM dependent_metadata "
                f"WHERE dependent_type = {ph} AND dependent_id = {ph}",
                (DependentType(dependent_type).value, dependent_id),
            ).fetchone()
        if row is None:
            return None
        d = dict(row)
        return DependentMetadata(
            name=d["name"],
            department=d.get("department"),
            is_critical=bool(d["is_critical"]),
        )

    def upsert_dependent_metadata(
        self, dependent_type: DependentType, dependent_id: str, metadata: DependentMetadata,
    ) -> None:
        ex = self._excluded_prefix
        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO dependent_metadata (dependent_type, dependent_id, name, "
                f"department, is_critical, updated_at) VALUES ({self._placeholders(6)}) "
                f"ON CONFLICT(dependent_type, dependent_id) DO UPDATE SET "
                f"name={ex}.name, department={ex}.department, "
                f"is_critical={ex}.is_critical, updated_at={ex}.updated_at",
                (
                    DependentType(dependent_type).value, dependent_id, metadata.name,
                    metadata.department, int(metadata.is_critical), now_iso(),
                ),
            )
            conn.commit()
