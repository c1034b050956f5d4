"""Dependency graph construction: bounded breadth-first traversal from a root policy.

Traversal rules:
  - nodes are keyed by id; the first (shallowest) discovery wins
  - a visited node is never expanded twice, so cycles terminate
  - nodes at ``max_depth`` are included but not expanded
  - the cancel token is checked once per BFS level, never mid-node

Structural metrics (cycles, components, density) are computed with NetworkX
over the discovered graph.
"""

from __future__ import annotations

import logging
import threading

import networkx as nx

from policygraph.defaults import MAX_GRAPH_DEPTH, POLICY_ID_PATTERN, default_max_depth
from policygraph.errors import CancellationError, NotFoundError, ValidationError
from policygraph.models import (
    DependencyGraph,
    DependentMetadata,
    DependentType,
    GraphEdge,
    GraphNode,
)
from policygraph.ports import DependencyRepository

log = logging.getLogger("policygraph.graph")

ROOT_NODE_TYPE = "policy"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class CancelToken:
    """Caller-owned cancellation signal shared with a running traversal."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError("Traversal cancelled by caller")


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def validate_policy_id(policy_id: str | None, field: str = "policyId") -> str:
    if not policy_id or not isinstance(policy_id, str):
        raise ValidationError.missing([field])
    if not POLICY_ID_PATTERN.match(policy_id):
        raise ValidationError(f"Invalid {field} format: {policy_id!r}", [field])
    return policy_id


def resolve_max_depth(max_depth: int | None) -> int:
    """Return a usable depth, applying the configured default for ``None``."""
    if max_depth is None:
        return default_max_depth()
    if isinstance(max_depth, bool) or not isinstance(max_depth, int):
        raise ValidationError(f"maxDepth must be an integer, got {max_depth!r}", ["maxDepth"])
    if max_depth < 0 or max_depth > MAX_GRAPH_DEPTH:
        raise ValidationError(
            f"maxDepth must be between 0 and {MAX_GRAPH_DEPTH}, got {max_depth}", ["maxDepth"],
        )
    return max_depth


# ---------------------------------------------------------------------------
# Metadata lookup
# ---------------------------------------------------------------------------

class MetadataLookup:
    """Per-request memo over ``repository.get_dependent_metadata``.

    Unknown dependents resolve to a placeholder (no department, not critical).
    """

    def __init__(self, repository: DependencyRepository) -> None:
        self._repository = repository
        self._cache: dict[tuple[str, str], DependentMetadata] = {}

    def __call__(self, dependent_type: DependentType | str, dependent_id: str) -> DependentMetadata:
        dtype = DependentType(dependent_type)
        key = (dtype.value, dependent_id)
        meta = self._cache.get(key)
        if meta is None:
            meta = (
                self._repository.get_dependent_metadata(dtype, dependent_id)
                or DependentMetadata.placeholder(dtype, dependent_id)
            )
            self._cache[key] = meta
        return meta


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class DependencyGraphBuilder:
    def __init__(self, repository: DependencyRepository) -> None:
        self._repository = repository

    def build_graph(
        self,
        root_id: str,
        max_depth: int | None = None,
        cancel: CancelToken | None = None,
    ) -> DependencyGraph:
        """Breadth-first traversal from *root_id*, bounded by *max_depth*.

        Raises ``NotFoundError`` for an unknown root; a known root without
        dependents yields a single-node graph.
        """
        validate_policy_id(root_id)
        depth_limit = resolve_max_depth(max_depth)
        if not self._repository.policy_exists(root_id):
            raise NotFoundError(f"Policy with ID {root_id} not found")

        policy = self._repository.get_policy(root_id)
        nodes: dict[str, GraphNode] = {
            root_id: GraphNode(
                id=root_id, type=ROOT_NODE_TYPE, depth=0,
                label=(policy.title if policy and policy.title else root_id),
            ),
        }
        edges: dict[tuple[str, str, str], GraphEdge] = {}
        frontier = [root_id]
        depth = 0
        deepest = 0

        while frontier and depth < depth_limit:
            if cancel is not None:
                cancel.raise_if_cancelled()
            next_frontier: list[str] = []
            for node_id in frontier:
                for dep in self._repository.list_dependencies(node_id):
                    edge_key = (node_id, dep.dependent_id, dep.dependent_type.value)
                    if edge_key not in edges:
                        edges[edge_key] = GraphEdge(
                            from_id=node_id,
                            to_id=dep.dependent_id,
                            strength=dep.dependency_strength,
                            dependent_type=dep.dependent_type,
                        )
                    if dep.dependent_id in nodes:
                        continue
                    nodes[dep.dependent_id] = GraphNode(
                        id=dep.dependent_id,
                        type=dep.dependent_type.value,
                        depth=depth + 1,
                        label=DependentMetadata.placeholder(dep.dependent_type, dep.dependent_id).name,
                    )
                    next_frontier.append(dep.dependent_id)
                    deepest = depth + 1
            frontier = next_frontier
            depth += 1

        graph = DependencyGraph(
            root_id=root_id,
            nodes=list(nodes.values()),
            edges=list(edges.values()),
        )
        graph.metadata = {
            "maxDepthReached": deepest,
            "requestedMaxDepth": depth_limit,
            "nodeCount": len(graph.nodes),
            "edgeCount": len(graph.edges),
            **structural_metrics(graph),
        }
        log.info(
            "Graph built for %s: %d nodes, %d edges, max depth %d",
            root_id, len(graph.nodes), len(graph.edges), deepest,
            extra={"policy_id": root_id},
        )
        return graph


# ---------------------------------------------------------------------------
# NetworkX view
# ---------------------------------------------------------------------------

def to_networkx(graph: DependencyGraph) -> nx.DiGraph:
    """Directed NetworkX view of a dependency graph (for metrics and export)."""
    G = nx.DiGraph()
    for n in graph.nodes:
        G.add_node(n.id, kind=n.type, depth=n.depth)
    for e in graph.edges:
        G.add_edge(e.from_id, e.to_id, strength=e.strength.value, kind=e.dependent_type.value)
    return G


def structural_metrics(graph: DependencyGraph) -> dict[str, object]:
    G = to_networkx(graph)
    if len(G) == 0:
        return {"hasCycles": False, "components": 0, "density": 0.0}
    return {
        "hasCycles": not nx.is_directed_acyclic_graph(G),
        "components": nx.number_weakly_connected_components(G),
        "density": round(nx.density(G), 4),
    }
