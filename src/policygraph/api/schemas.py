"""Pydantic request models.

Required dependency fields are declared optional here so the orchestrator
can report every missing field at once in its own error message.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class DependencyBody(BaseModel):
    dependentType: str | None = None
    dependentId: str | None = None
    dependencyStrength: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] | None = None


class BulkDependencyBody(BaseModel):
    dependencies: list[DependencyBody] = Field(default_factory=list)


class DependencyUpdateBody(BaseModel):
    dependencyStrength: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

class PolicyBody(BaseModel):
    title: str = ""
    category: str = ""
    version: str = "1.0"


class DependentMetadataBody(BaseModel):
    name: str | None = None
    department: str | None = None
    isCritical: bool = False
