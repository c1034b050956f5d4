"""Contract tests for DependencyRepository implementations.

Every storage backend must pass these tests.  The ``contract_store`` fixture
is parametrised so that adding a new backend only requires extending the
params list.  Postgres tests require ``POLICYGRAPH_TEST_PG_DSN`` to be set;
they are skipped otherwise.
"""

from __future__ import annotations

import os

import pytest

from policygraph.adapters.sqlite_store import SqliteStore
from policygraph.errors import DuplicateDependencyError
from policygraph.models import (
    DependencyStrength,
    DependentMetadata,
    DependentType,
    Policy,
    PolicyDependency,
)
from policygraph.ports import (
    DependencyRepository,
    DependencyStorePort,
    DependentMetadataPort,
    PolicyStorePort,
)


# ---------------------------------------------------------------------------
# Parametrised fixture: extend params for new backends
# ---------------------------------------------------------------------------

def _pg_available() -> bool:
    return bool(os.environ.get("POLICYGRAPH_TEST_PG_DSN"))


_backends = ["sqlite"]
if _pg_available():
    _backends.append("postgres")


@pytest.fixture(params=_backends)
def contract_store(request, tmp_path):
    if request.param == "sqlite":
        store = SqliteStore(tmp_path / "contract.db")
        yield store
        store.close()
    elif request.param == "postgres":
        from policygraph.adapters.postgres_store import PostgresStore

        dsn = os.environ["POLICYGRAPH_TEST_PG_DSN"]
        store = PostgresStore(dsn, min_size=1, max_size=2)
        import psycopg
        with psycopg.connect(dsn) as conn:
            for table in ("policy_dependencies", "dependent_metadata", "policies"):
                conn.execute(f"DELETE FROM {table}")
            conn.commit()
        yield store
        store.close()
    else:
        raise ValueError(f"Unknown backend: {request.param}")


def _dep(policy_id="pol-1", dependent_type=DependentType.WORKFLOW, dependent_id="wf-1",
         strength=DependencyStrength.STRONG, **kw) -> PolicyDependency:
    return PolicyDependency(
        policy_id=policy_id,
        dependent_type=dependent_type,
        dependent_id=dependent_id,
        dependency_strength=strength,
        **kw,
    )


# ===================================================================
# Protocol conformance
# ===================================================================

class TestProtocolConformance:
    def test_is_dependency_store(self, contract_store):
        assert isinstance(contract_store, DependencyStorePort)

    def test_is_policy_store(self, contract_store):
        assert isinstance(contract_store, PolicyStorePort)

    def test_is_metadata_port(self, contract_store):
        assert isinstance(contract_store, DependentMetadataPort)

    def test_is_repository(self, contract_store):
        assert isinstance(contract_store, DependencyRepository)


# ===================================================================
# Dependencies
# ===================================================================

class TestDependencies:
    def test_insert_and_list(self, contract_store):
        dep = _dep(notes="n", metadata={"automaticUpdate": False})
        contract_store.insert_dependency(dep)
        listed = contract_store.list_dependencies("pol-1")
        assert len(listed) == 1
        got = listed[0]
        assert got.id == dep.id
        assert got.dependent_type == DependentType.WORKFLOW
        assert got.dependency_strength == DependencyStrength.STRONG
        assert got.notes == "n"
        assert got.metadata == {"automaticUpdate": False}

    def test_list_unknown_is_empty(self, contract_store):
        assert contract_store.list_dependencies("nobody") == []

    def test_exists(self, contract_store):
        contract_store.insert_dependency(_dep())
        assert contract_store.dependency_exists("pol-1", DependentType.WORKFLOW, "wf-1")
        assert not contract_store.dependency_exists("pol-1", DependentType.MODULE, "wf-1")

    def test_unique_triple(self, contract_store):
        contract_store.insert_dependency(_dep())
        with pytest.raises(DuplicateDependencyError):
            contract_store.insert_dependency(_dep(strength=DependencyStrength.WEAK))
        assert len(contract_store.list_dependencies("pol-1")) == 1

    def test_list_order_strength_first(self, contract_store):
        contract_store.insert_dependency(_dep(dependent_id="w-weak", strength=DependencyStrength.WEAK))
        contract_store.insert_dependency(_dep(dependent_id="w-med", strength=DependencyStrength.MEDIUM))
        contract_store.insert_dependency(_dep(dependent_id="w-strong"))
        ids = [d.dependent_id for d in contract_store.list_dependencies("pol-1")]
        assert ids == ["w-strong", "w-med", "w-weak"]

    def test_get_update_delete(self, contract_store):
        dep = contract_store.insert_dependency(_dep())
        assert contract_store.get_dependency(dep.id).dependent_id == "wf-1"

        updated = contract_store.update_dependency(
            dep.id, dependency_strength=DependencyStrength.MEDIUM, notes="changed",
        )
        assert updated.dependency_strength == DependencyStrength.MEDIUM
        assert updated.notes == "changed"

        assert contract_store.delete_dependency(dep.id) is True
        assert contract_store.get_dependency(dep.id) is None
        assert contract_store.delete_dependency(dep.id) is False

    def test_update_rejects_unknown_column(self, contract_store):
        dep = contract_store.insert_dependency(_dep())
        with pytest.raises(ValueError, match="Invalid update column"):
            contract_store.update_dependency(dep.id, policy_id="other")

    def test_update_missing_returns_none(self, contract_store):
        assert contract_store.update_dependency("missing", notes="x") is None


# ===================================================================
# Policies
# ===================================================================

class TestPolicies:
    def test_upsert_and_get(self, contract_store):
        contract_store.upsert_policy(Policy(id="pol-1", title="Leave", category="HR"))
        contract_store.upsert_policy(Policy(id="pol-1", title="Leave v2", category="HR"))
        got = contract_store.get_policy("pol-1")
        assert got.title == "Leave v2"
        assert got.category == "HR"

    def test_exists_via_registration(self, contract_store):
        assert not contract_store.policy_exists("pol-1")
        contract_store.upsert_policy(Policy(id="pol-1"))
        assert contract_store.policy_exists("pol-1")

    def test_exists_via_edges(self, contract_store):
        contract_store.insert_dependency(_dep(policy_id="pol-9"))
        assert contract_store.policy_exists("pol-9")
        assert contract_store.get_policy("pol-9") is None


# ===================================================================
# Dependent metadata
# ===================================================================

class TestDependentMetadata:
    def test_missing_is_none(self, contract_store):
        assert contract_store.get_dependent_metadata(DependentType.WORKFLOW, "wf-1") is None

    def test_upsert_roundtrip(self, contract_store):
        contract_store.upsert_dependent_metadata(
            DependentType.WORKFLOW, "wf-1",
            DependentMetadata(name="Onboarding", department="HR", is_critical=True),
        )
        meta = contract_store.get_dependent_metadata(DependentType.WORKFLOW, "wf-1")
        assert meta == DependentMetadata(name="Onboarding", department="HR", is_critical=True)

        contract_store.upsert_dependent_metadata(
            DependentType.WORKFLOW, "wf-1", DependentMetadata(name="Onboarding", department="IT"),
        )
        meta = contract_store.get_dependent_metadata(DependentType.WORKFLOW, "wf-1")
        assert meta.department == "IT"
        assert meta.is_critical is False

    def test_keyed_by_type(self, contract_store):
        contract_store.upsert_dependent_metadata(
            DependentType.MODULE, "x1", DependentMetadata(name="Module X"),
        )
        assert contract_store.get_dependent_metadata(DependentType.TEMPLATE, "x1") is None
