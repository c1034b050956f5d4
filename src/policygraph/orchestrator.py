"""Impact analysis orchestration: dependency mutation and composed analysis.

Writes are serialized per (policy_id, dependent_type, dependent_id) key; the
backend UNIQUE constraint backs this up across processes.  Reads take no
locks and build the graph exactly once per analysis so every section of the
result describes the same snapshot.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from policygraph.defaults import COMPLIANCE_NOTIFY_SCORE, DEFAULT_STRENGTH_BY_TYPE
from policygraph.errors import (
    DuplicateDependencyError,
    NotFoundError,
    PolicyGraphError,
    ValidationError,
)
from policygraph.graph import (
    CancelToken,
    DependencyGraphBuilder,
    MetadataLookup,
    validate_policy_id,
)
from policygraph.models import (
    AffectedEntity,
    ChangeScope,
    ChecklistItem,
    DependencyGraph,
    DependencyStrength,
    DependentMetadata,
    DependentType,
    ImpactAnalysis,
    Policy,
    PolicyDependency,
    RiskAssessment,
    RiskLevel,
)
from policygraph.ports import DependencyRepository
from policygraph.scope import ChangeScopeClassifier
from policygraph.scoring import RiskScorer

log = logging.getLogger("policygraph.orchestrator")

_REQUIRED_FIELDS = ("policyId", "dependentType", "dependentId")

_STRENGTH_TO_RISK = {
    DependencyStrength.STRONG: RiskLevel.CRITICAL,
    DependencyStrength.MEDIUM: RiskLevel.HIGH,
    DependencyStrength.WEAK: RiskLevel.MEDIUM,
}


# ---------------------------------------------------------------------------
# Per-key locking
# ---------------------------------------------------------------------------

class KeyedLock:
    """One ``threading.Lock`` per key, dropped when no holder remains."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, ...], list[Any]] = {}

    @contextmanager
    def hold(self, key: tuple[str, ...]) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


# ---------------------------------------------------------------------------
# DTO parsing
# ---------------------------------------------------------------------------

def _field(dto: Mapping[str, Any], camel: str) -> Any:
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in camel)
    value = dto.get(camel)
    return dto.get(snake) if value is None else value


def _parse_type(value: Any) -> DependentType:
    try:
        return DependentType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in DependentType)
        raise ValidationError(
            f"Invalid dependentType {value!r} (expected one of: {allowed})", ["dependentType"],
        ) from None


def _parse_strength(value: Any) -> DependencyStrength:
    try:
        return DependencyStrength(value)
    except ValueError:
        allowed = ", ".join(s.value for s in DependencyStrength)
        raise ValidationError(
            f"Invalid dependencyStrength {value!r} (expected one of: {allowed})",
            ["dependencyStrength"],
        ) from None


def default_strength(dependent_type: DependentType) -> DependencyStrength:
    return DEFAULT_STRENGTH_BY_TYPE.get(dependent_type, DependencyStrength.MEDIUM)


# ---------------------------------------------------------------------------
# Result composition helpers
# ---------------------------------------------------------------------------

def _recommended_actions(strength: DependencyStrength) -> list[str]:
    actions: list[str] = []
    if strength == DependencyStrength.STRONG:
        actions += ["Test thoroughly before publishing", "Notify all affected users",
                    "Create rollback plan"]
    elif strength == DependencyStrength.MEDIUM:
        actions += ["Review dependent entity", "Notify team leads"]
    actions.append("Manual update required")
    return actions


def affected_summary(
    graph: DependencyGraph,
    dependent_type: DependentType,
    metadata: MetadataLookup,
) -> dict[str, Any]:
    """Summarise the dependents of one type, first (strongest) edge per id."""
    items: list[AffectedEntity] = []
    seen: set[str] = set()
    for e in graph.edges:
        if e.dependent_type != dependent_type or e.to_id in seen:
            continue
        seen.add(e.to_id)
        meta = metadata(e.dependent_type, e.to_id)
        items.append(AffectedEntity(
            id=e.to_id,
            type=e.dependent_type,
            name=meta.name,
            department=meta.department,
            strength=e.strength,
            risk_level=_STRENGTH_TO_RISK[e.strength],
            recommended_actions=_recommended_actions(e.strength),
        ))
    critical = [i for i in items if i.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)]
    return {
        "totalCount": len(items),
        "byRiskLevel": {
            level.value: sum(1 for i in items if i.risk_level == level) for level in RiskLevel
        },
        "items": [i.to_dict() for i in items],
        "critical": [i.to_dict() for i in critical],
    }


def mitigation_strategies(
    risk: RiskAssessment,
    scope: ChangeScope,
) -> list[str]:
    recs: list[str] = []
    if risk.requires_approval:
        recs += [
            "Obtain approval from senior management before publishing",
            "Notify owners of dependent workflows",
            "Schedule staged rollout during a low-usage period",
            "Create comprehensive rollback plan",
        ]
    strong = risk.by_strength.get(DependencyStrength.STRONG.value, 0)
    if strong:
        recs.append(f"Review {strong} strong dependencies carefully")
        recs.append("Test all strongly-coupled workflows")
    critical = sum(1 for f in risk.risk_factors if f.factor.startswith("Critical Workflow"))
    if critical:
        recs.append(f"Test {critical} critical workflows before publishing")
    if scope.is_system_wide:
        recs.append("System-wide impact detected - consider phased rollout")
        recs.append("Monitor system health closely after deployment")
    if not recs:
        recs.append("Low-risk change - standard review process sufficient")
    return recs


def suggest_notifications(
    risk: RiskAssessment,
    workflows: dict[str, Any],
    modules: dict[str, Any],
) -> list[dict[str, str]]:
    notes: list[dict[str, str]] = []
    if risk.risk_level == RiskLevel.CRITICAL:
        notes.append({"recipient": "All Staff", "priority": "high",
                      "message": "Critical policy update affecting core workflows - review required"})
    if workflows["critical"]:
        notes.append({"recipient": "Workflow Owners", "priority": "high",
                      "message": f"{len(workflows['critical'])} workflows require attention"})
    if modules["critical"]:
        notes.append({"recipient": "Module Administrators", "priority": "medium",
                      "message": f"{len(modules['critical'])} modules need updates"})
    if risk.overall_risk_score > COMPLIANCE_NOTIFY_SCORE:
        notes.append({"recipient": "Compliance Team", "priority": "medium",
                      "message": "Policy change for review and approval"})
    return notes


def pre_publish_checklist(risk: RiskAssessment, scope: ChangeScope) -> list[ChecklistItem]:
    """One item per distinct risk factor, then one per affected department."""
    required = risk.requires_approval
    items: list[ChecklistItem] = []
    seen: set[str] = set()
    for f in risk.risk_factors:
        if f.factor in seen:
            continue
        seen.add(f.factor)
        items.append(ChecklistItem(item=f"Review: {f.factor}", required=required))
    for dept in scope.affected_departments:
        items.append(ChecklistItem(item=f"Confirm readiness with {dept}", required=required))
    return items


def publication_allowed(analysis: ImpactAnalysis, has_approval: bool = False) -> bool:
    """Whether a caller may publish; the engine itself never blocks."""
    return not analysis.risk_assessment.requires_approval or has_approval


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ImpactAnalysisOrchestrator:
    def __init__(self, repository: DependencyRepository) -> None:
        self._repository = repository
        self._builder = DependencyGraphBuilder(repository)
        self._scorer = RiskScorer(repository)
        self._classifier = ChangeScopeClassifier(repository)
        self._locks = KeyedLock()

    @property
    def repository(self) -> DependencyRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def create_dependency(
        self,
        dto: Mapping[str, Any],
        created_by: str = "system",
    ) -> PolicyDependency:
        """Validate and insert one dependency edge.

        Not idempotent: an existing triple raises ``DuplicateDependencyError``.
        An omitted strength is derived from the dependent type.
        """
        if not isinstance(dto, Mapping):
            raise ValidationError(
                f"Dependency must be an object, got {type(dto).__name__}", ["dependency"],
            )
        missing = [f for f in _REQUIRED_FIELDS if not _field(dto, f)]
        if missing:
            raise ValidationError.missing(missing)

        notes = _field(dto, "notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string", ["notes"])
        metadata = _field(dto, "metadata")
        if metadata is not None and not isinstance(metadata, Mapping):
            raise ValidationError("metadata must be an object", ["metadata"])

        policy_id = validate_policy_id(_field(dto, "policyId"))
        dependent_id = validate_policy_id(_field(dto, "dependentId"), field="dependentId")
        dependent_type = _parse_type(_field(dto, "dependentType"))
        raw_strength = _field(dto, "dependencyStrength")
        strength = (
            _parse_strength(raw_strength) if raw_strength else default_strength(dependent_type)
        )

        dependency = PolicyDependency(
            policy_id=policy_id,
            dependent_type=dependent_type,
            dependent_id=dependent_id,
            dependency_strength=strength,
            notes=notes,
            metadata=dict(metadata or {}),
            created_by=created_by,
        )
        with self._locks.hold(dependency.key):
            if self._repository.dependency_exists(policy_id, dependent_type, dependent_id):
                raise DuplicateDependencyError(*dependency.key)
            saved = self._repository.insert_dependency(dependency)

        log.info(
            "Created dependency %s: %s -> %s:%s (%s)",
            saved.id, policy_id, dependent_type.value, dependent_id, strength.value,
            extra={"policy_id": policy_id, "actor": created_by},
        )
        return saved

    def update_dependency(
        self,
        dependency_id: str,
        *,
        strength: DependencyStrength | str | None = None,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PolicyDependency:
        existing = self._repository.get_dependency(dependency_id)
        if existing is None:
            raise NotFoundError(f"Dependency with ID {dependency_id} not found")

        fields: dict[str, Any] = {}
        if strength is not None:
            fields["dependency_strength"] = _parse_strength(strength)
        if notes is not None:
            fields["notes"] = notes
        if metadata is not None:
            fields["metadata"] = metadata

        with self._locks.hold(existing.key):
            updated = self._repository.update_dependency(dependency_id, **fields)
        if updated is None:
            raise NotFoundError(f"Dependency with ID {dependency_id} not found")
        log.info("Updated dependency %s (%s)", dependency_id, ", ".join(sorted(fields)) or "no-op")
        return updated

    def delete_dependency(self, dependency_id: str) -> bool:
        existing = self._repository.get_dependency(dependency_id)
        if existing is None:
            raise NotFoundError(f"Dependency with ID {dependency_id} not found")
        with self._locks.hold(existing.key):
            deleted = self._repository.delete_dependency(dependency_id)
        if not deleted:
            raise NotFoundError(f"Dependency with ID {dependency_id} not found")
        log.info("Deleted dependency %s", dependency_id)
        return True

    def bulk_create_dependencies(
        self,
        dtos: list[Mapping[str, Any]],
        created_by: str = "system",
    ) -> dict[str, Any]:
        """Create each edge independently; invalid or duplicate items are reported."""
        created: list[PolicyDependency] = []
        errors: list[dict[str, Any]] = []
        for index, dto in enumerate(dtos):
            try:
                created.append(self.create_dependency(dto, created_by=created_by))
            except PolicyGraphError as exc:
                log.warning("Bulk item %d rejected: %s", index, exc)
                errors.append({"index": index, "error": str(exc)})
        log.info("Bulk created %d/%d dependencies", len(created), len(dtos))
        return {"created": created, "errors": errors}

    def register_policy(
        self,
        policy_id: str,
        title: str = "",
        category: str = "",
        version: str = "1.0",
    ) -> Policy:
        policy = Policy(id=validate_policy_id(policy_id), title=title,
                        category=category, version=version)
        existing = self._repository.get_policy(policy.id)
        if existing is not None:
            policy.created_at = existing.created_at
        self._repository.upsert_policy(policy)
        return policy

    def set_dependent_metadata(
        self,
        dependent_type: DependentType | str,
        dependent_id: str,
        *,
        name: str | None = None,
        department: str | None = None,
        is_critical: bool = False,
    ) -> DependentMetadata:
        dtype = _parse_type(dependent_type)
        validate_policy_id(dependent_id, field="dependentId")
        meta = DependentMetadata(
            name=name or DependentMetadata.placeholder(dtype, dependent_id).name,
            department=department or None,
            is_critical=is_critical,
        )
        self._repository.upsert_dependent_metadata(dtype, dependent_id, meta)
        return meta

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_dependencies(self, policy_id: str) -> list[PolicyDependency]:
        return self._repository.list_dependencies(validate_policy_id(policy_id))

    def build_graph(
        self, policy_id: str, max_depth: int | None = None, cancel: CancelToken | None = None,
    ) -> DependencyGraph:
        return self._builder.build_graph(policy_id, max_depth, cancel=cancel)

    def assess_risk(
        self, policy_id: str, max_depth: int | None = None, cancel: CancelToken | None = None,
    ) -> RiskAssessment:
        return self._scorer.assess_risk(policy_id, max_depth, cancel=cancel)

    def calculate_change_scope(
        self, policy_id: str, max_depth: int | None = None, cancel: CancelToken | None = None,
    ) -> ChangeScope:
        return self._classifier.calculate_change_scope(policy_id, max_depth, cancel=cancel)

    def get_impact_analysis(
        self,
        policy_id: str,
        max_depth: int | None = None,
        cancel: CancelToken | None = None,
        analyzed_by: str | None = None,
    ) -> ImpactAnalysis:
        """Compose graph, risk, scope, recommendations and checklist.

        Either the full result is returned or an exception propagates.
        """
        graph = self._builder.build_graph(policy_id, max_depth, cancel=cancel)
        lookup = MetadataLookup(self._repository)
        risk = self._scorer.assess_risk(policy_id, graph=graph, metadata=lookup)
        scope = self._classifier.calculate_change_scope(policy_id, graph=graph, metadata=lookup)
        workflows = affected_summary(graph, DependentType.WORKFLOW, lookup)
        modules = affected_summary(graph, DependentType.MODULE, lookup)

        policy = self._repository.get_policy(policy_id)
        analysis = ImpactAnalysis(
            policy=policy.to_dict() if policy else {"id": policy_id},
            dependency_graph=graph,
            risk_assessment=risk,
            change_scope=scope,
            affected_workflows=workflows,
            affected_modules=modules,
            mitigation_strategies=mitigation_strategies(risk, scope),
            notifications=suggest_notifications(risk, workflows, modules),
            pre_publish_checklist=pre_publish_checklist(risk, scope),
            analyzed_by=analyzed_by,
        )
        log.info(
            "Impact analysis for %s: %d affected, risk %s, approval %s",
            policy_id, scope.total_affected, risk.risk_level.value,
            "required" if risk.requires_approval else "not required",
            extra={"policy_id": policy_id, "actor": analyzed_by},
        )
        return analysis
