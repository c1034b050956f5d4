"""Core data types for policygraph."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DependentType(str, Enum):
    WORKFLOW = "workflow"
    MODULE = "module"
    TEMPLATE = "template"
    ASSESSMENT = "assessment"
    TRAINING = "training"
    DOCUMENT = "document"


class DependencyStrength(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

@dataclass
class PolicyDependency:
    policy_id: str
    dependent_type: DependentType
    dependent_id: str
    dependency_strength: DependencyStrength
    id: str = field(default_factory=new_id)
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_by: str = "system"
    created_at: str = field(default_factory=now_iso)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.policy_id, self.dependent_type.value, self.dependent_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "policyId": self.policy_id,
            "dependentType": self.dependent_type.value,
            "dependentId": self.dependent_id,
            "dependencyStrength": self.dependency_strength.value,
            "notes": self.notes,
            "metadata": self.metadata,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
        }


@dataclass
class Policy:
    id: str
    title: str = ""
    category: str = ""
    version: str = "1.0"
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "version": self.version,
            "createdAt": self.created_at,
        }


@dataclass
class DependentMetadata:
    name: str
    department: str | None = None
    is_critical: bool = False

    @classmethod
    def placeholder(cls, dependent_type: DependentType, dependent_id: str) -> DependentMetadata:
        """Label used when the store knows nothing about a dependent."""
        return cls(name=f"{dependent_type.value.capitalize()} {dependent_id[:8]}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "department": self.department,
            "isCritical": self.is_critical,
        }


# ---------------------------------------------------------------------------
# Dependency graph
# ---------------------------------------------------------------------------

@dataclass
class GraphNode:
    id: str
    type: str
    depth: int
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "depth": self.depth, "label": self.label}


@dataclass
class GraphEdge:
    from_id: str
    to_id: str
    strength: DependencyStrength
    dependent_type: DependentType

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromId": self.from_id,
            "toId": self.to_id,
            "strength": self.strength.value,
            "dependentType": self.dependent_type.value,
        }


@dataclass
class DependencyGraph:
    root_id: str
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def max_depth_reached(self) -> int:
        return self.metadata.get("maxDepthReached", 0)

    @property
    def dependents(self) -> list[GraphNode]:
        """Every node except the root."""
        return [n for n in self.nodes if n.id != self.root_id]

    def strength_breakdown(self) -> dict[str, int]:
        counts = {s.value: 0 for s in DependencyStrength}
        for e in self.edges:
            counts[e.strength.value] += 1
        return counts

    def type_breakdown(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for e in self.edges:
            counts[e.dependent_type.value] = counts.get(e.dependent_type.value, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "rootId": self.root_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "metadata": self.metadata,
            "strengthBreakdown": self.strength_breakdown(),
            "typeBreakdown": self.type_breakdown(),
        }


# ---------------------------------------------------------------------------
# Risk assessment
# ---------------------------------------------------------------------------

@dataclass
class RiskFactor:
    factor: str
    severity: str

    def to_dict(self) -> dict[str, Any]:
        return {"factor": self.factor, "severity": self.severity}


@dataclass
class RiskAssessment:
    policy_id: str
    overall_risk_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    risk_factors: list[RiskFactor] = field(default_factory=list)
    by_strength: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    dependency_count: int = 0

    @property
    def requires_approval(self) -> bool:
        return self.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)

    def to_dict(self) -> dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "overallRiskScore": self.overall_risk_score,
            "riskLevel": self.risk_level.value,
            "riskFactors": [f.to_dict() for f in self.risk_factors],
            "requiresApproval": self.requires_approval,
            "byStrength": self.by_strength,
            "byType": self.by_type,
            "dependencyCount": self.dependency_count,
        }


# ---------------------------------------------------------------------------
# Change scope
# ---------------------------------------------------------------------------

@dataclass
class ChangeScope:
    policy_id: str
    is_system_wide: bool = False
    impact_radius: int = 0
    affected_departments: list[str] = field(default_factory=list)
    department_counts: dict[str, int] = field(default_factory=dict)
    total_affected: int = 0
    by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "isSystemWide": self.is_system_wide,
            "isLocalized": not self.is_system_wide,
            "impactRadius": self.impact_radius,
            "affectedDepartments": self.affected_departments,
            "departmentCounts": self.department_counts,
            "totalAffected": self.total_affected,
            "byType": self.by_type,
        }


# ---------------------------------------------------------------------------
# Composed impact analysis
# ---------------------------------------------------------------------------

@dataclass
class AffectedEntity:
    id: str
    type: DependentType
    name: str
    strength: DependencyStrength
    risk_level: RiskLevel
    department: str | None = None
    recommended_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "department": self.department,
            "dependencyStrength": self.strength.value,
            "riskLevel": self.risk_level.value,
            "recommendedActions": self.recommended_actions,
        }


@dataclass
class ChecklistItem:
    item: str
    required: bool
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"item": self.item, "required": self.required, "completed": self.completed}


@dataclass
class ImpactAnalysis:
    policy: dict[str, Any]
    dependency_graph: DependencyGraph
    risk_assessment: RiskAssessment
    change_scope: ChangeScope
    affected_workflows: dict[str, Any] = field(default_factory=dict)
    affected_modules: dict[str, Any] = field(default_factory=dict)
    mitigation_strategies: list[str] = field(default_factory=list)
    notifications: list[dict[str, str]] = field(default_factory=list)
    pre_publish_checklist: list[ChecklistItem] = field(default_factory=list)
    analyzed_by: str | None = None
    analyzed_at: str = field(default_factory=now_iso)

    @property
    def publication_blocked(self) -> bool:
        return self.risk_assessment.requires_approval

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy": self.policy,
            "analyzedAt": self.analyzed_at,
            "analyzedBy": self.analyzed_by,
            "dependencyGraph": self.dependency_graph.to_dict(),
            "riskAssessment": self.risk_assessment.to_dict(),
            "changeScope": self.change_scope.to_dict(),
            "affectedWorkflows": self.affected_workflows,
            "affectedModules": self.affected_modules,
            "recommendations": {
                "mitigationStrategies": self.mitigation_strategies,
                "notifications": self.notifications,
            },
            "prePublishChecklist": [c.to_dict() for c in self.pre_publish_checklist],
            "publicationBlocked": self.publication_blocked,
        }
