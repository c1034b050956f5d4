"""Change-scope (blast radius) classification.

impact_radius = sum over affected departments of
                2 if the department holds >= 3 dependents else 1
system-wide   = radius > 7 or more than 3 departments
"""

from __future__ import annotations

import logging
from typing import Callable

from policygraph.defaults import (
    CONCENTRATED_DEPARTMENT_MIN,
    SYSTEM_WIDE_DEPARTMENTS,
    SYSTEM_WIDE_RADIUS,
)
from policygraph.graph import CancelToken, DependencyGraphBuilder, MetadataLookup
from policygraph.models import ChangeScope, DependencyGraph, DependentMetadata, DependentType
from policygraph.ports import DependencyRepository

log = logging.getLogger("policygraph.scope")


def impact_radius(department_counts: dict[str, int]) -> int:
    return sum(
        2 if count >= CONCENTRATED_DEPARTMENT_MIN else 1
        for count in department_counts.values()
    )


def is_system_wide(radius: int, department_total: int) -> bool:
    return radius > SYSTEM_WIDE_RADIUS or department_total > SYSTEM_WIDE_DEPARTMENTS


class ChangeScopeClassifier:
    def __init__(self, repository: DependencyRepository) -> None:
        self._repository = repository
        self._builder = DependencyGraphBuilder(repository)

    def calculate_change_scope(
        self,
        policy_id: str,
        max_depth: int | None = None,
        graph: DependencyGraph | None = None,
        metadata: Callable[[DependentType, str], DependentMetadata] | None = None,
        cancel: CancelToken | None = None,
    ) -> ChangeScope:
        if graph is None:
            graph = self._builder.build_graph(policy_id, max_depth, cancel=cancel)
        lookup = metadata or MetadataLookup(self._repository)

        department_counts: dict[str, int] = {}
        by_type: dict[str, int] = {}
        dependents = graph.dependents
        for node in dependents:
            by_type[node.type] = by_type.get(node.type, 0) + 1
            department = lookup(DependentType(node.type), node.id).department
            if department:
                department_counts[department] = department_counts.get(department, 0) + 1

        radius = impact_radius(department_counts)
        scope = ChangeScope(
            policy_id=policy_id,
            is_system_wide=is_system_wide(radius, len(department_counts)),
            impact_radius=radius,
            affected_departments=sorted(department_counts),
            department_counts=dict(sorted(department_counts.items())),
            total_affected=len(dependents),
            by_type=by_type,
        )
        log.info(
            "Change scope for %s: radius=%d departments=%d system_wide=%s",
            policy_id, radius, len(department_counts), scope.is_system_wide,
            extra={"policy_id": policy_id},
        )
        return scope
