"""Risk scoring over a dependency graph.

score = strong * 12 + medium * 5 + weak * 1, clamped to [0, 100]

Critical workflows add a named high-severity factor but never move the
numeric score.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from policygraph.defaults import (
    RISK_CLASSIFICATION_THRESHOLDS,
    RISK_SCORE_MAX,
    RISK_SCORE_MIN,
    SEVERITY_ORDER,
    STRENGTH_WEIGHTS,
)
from policygraph.graph import CancelToken, DependencyGraphBuilder, MetadataLookup
from policygraph.models import (
    DependencyGraph,
    DependencyStrength,
    DependentMetadata,
    DependentType,
    GraphEdge,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
)
from policygraph.ports import DependencyRepository

log = logging.getLogger("policygraph.scoring")

MetadataFn = Callable[[DependentType, str], DependentMetadata]


def classify_risk_level(
    risk_score: float,
    thresholds: dict[str, int] | None = None,
) -> RiskLevel:
    """Classify risk level from score.  Boundary values map to the higher band."""
    t = thresholds or RISK_CLASSIFICATION_THRESHOLDS
    if risk_score >= t["critical"]:
        return RiskLevel.CRITICAL
    if risk_score >= t["high"]:
        return RiskLevel.HIGH
    if risk_score >= t["medium"]:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def score_dependencies(edges: Iterable[GraphEdge]) -> tuple[int, dict[str, int], dict[str, int]]:
    """Return ``(clamped_score, by_strength, by_type)`` for a flat edge list."""
    by_strength = {s.value: 0 for s in DependencyStrength}
    by_type: dict[str, int] = {}
    for e in edges:
        by_strength[e.strength.value] += 1
        by_type[e.dependent_type.value] = by_type.get(e.dependent_type.value, 0) + 1
    raw = sum(STRENGTH_WEIGHTS[s] * by_strength[s.value] for s in DependencyStrength)
    return max(RISK_SCORE_MIN, min(RISK_SCORE_MAX, raw)), by_strength, by_type


def _risk_factors(
    graph: DependencyGraph,
    by_strength: dict[str, int],
    metadata: MetadataFn,
) -> list[RiskFactor]:
    factors: list[RiskFactor] = []

    seen: set[str] = set()
    critical_names: list[str] = []
    for e in graph.edges:
        if e.dependent_type != DependentType.WORKFLOW or e.to_id in seen:
            continue
        seen.add(e.to_id)
        meta = metadata(e.dependent_type, e.to_id)
        if meta.is_critical:
            critical_names.append(meta.name)
    for name in sorted(critical_names):
        factors.append(RiskFactor(f"Critical Workflow Dependency: {name}", "high"))

    strong = by_strength[DependencyStrength.STRONG.value]
    medium = by_strength[DependencyStrength.MEDIUM.value]
    weak = by_strength[DependencyStrength.WEAK.value]
    if strong:
        factors.append(RiskFactor(f"{strong} strong dependencies", "high"))
    if medium:
        factors.append(RiskFactor(f"{medium} medium dependencies", "medium"))
    if graph.metadata.get("hasCycles"):
        factors.append(RiskFactor("Circular dependency detected", "medium"))
    if weak:
        factors.append(RiskFactor(f"{weak} weak dependencies", "low"))

    # stable: equal severities keep insertion order
    return sorted(factors, key=lambda f: SEVERITY_ORDER.get(f.severity, 99))


class RiskScorer:
    def __init__(self, repository: DependencyRepository) -> None:
        self._repository = repository
        self._builder = DependencyGraphBuilder(repository)

    def assess_risk(
        self,
        policy_id: str,
        max_depth: int | None = None,
        graph: DependencyGraph | None = None,
        metadata: MetadataFn | None = None,
        cancel: CancelToken | None = None,
    ) -> RiskAssessment:
        """Score every edge reachable from *policy_id*.

        A policy without dependents scores 0 / low; that is not an error.
        """
        if graph is None:
            graph = self._builder.build_graph(policy_id, max_depth, cancel=cancel)
        lookup = metadata or MetadataLookup(self._repository)

        score, by_strength, by_type = score_dependencies(graph.edges)
        assessment = RiskAssessment(
            policy_id=policy_id,
            overall_risk_score=score,
            risk_level=classify_risk_level(score),
            risk_factors=_risk_factors(graph, by_strength, lookup),
            by_strength=by_strength,
            by_type=by_type,
            dependency_count=len(graph.edges),
        )
        log.info(
            "Risk for %s: score=%d level=%s deps=%d",
            policy_id, score, assessment.risk_level.value, assessment.dependency_count,
            extra={"policy_id": policy_id},
        )
        return assessment
