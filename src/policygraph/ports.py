"""Storage port interfaces for policygraph.

Defines Protocol classes that any persistence backend must implement.
The composite ``DependencyRepository`` is what the engine depends on.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from policygraph.models import DependentMetadata, DependentType, Policy, PolicyDependency


# ---------------------------------------------------------------------------
# Individual ports
# ---------------------------------------------------------------------------

@runtime_checkable
class DependencyStorePort(Protocol):
    def list_dependencies(self, policy_id: str) -> list[PolicyDependency]: ...
    def dependency_exists(
        self, policy_id: str, dependent_type: DependentType, dependent_id: str,
    ) -> bool: ...
    def insert_dependency(self, dependency: PolicyDependency) -> PolicyDependency: ...
    def get_dependency(self, dependency_id: str) -> PolicyDependency | None: ...
    def update_dependency(self, dependency_id: str, **fields: Any) -> PolicyDependency | None: ...
    def delete_dependency(self, dependency_id: str) -> bool: ...


@runtime_checkable
class PolicyStorePort(Protocol):
    def upsert_policy(self, policy: Policy) -> None: ...
    def get_policy(self, policy_id: str) -> Policy | None: ...
    def policy_exists(self, policy_id: str) -> bool: ...


@runtime_checkable
class DependentMetadataPort(Protocol):
    def get_dependent_metadata(
        self, dependent_type: DependentType, dependent_id: str,
    ) -> DependentMetadata | None: ...
    def upsert_dependent_metadata(
        self, dependent_type: DependentType, dependent_id: str, metadata: DependentMetadata,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------

@runtime_checkable
class DependencyRepository(
    DependencyStorePort,
    PolicyStorePort,
    DependentMetadataPort,
    Protocol,
):
    """Everything the engine needs from its storage collaborator."""

    def close(self) -> None: ...
