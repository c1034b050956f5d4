"""Policy dependency and impact analysis endpoints."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from policygraph.api.auth import require_operator, require_viewer
from policygraph.api.schemas import (
    BulkDependencyBody,
    DependencyBody,
    DependencyUpdateBody,
    DependentMetadataBody,
    PolicyBody,
)
from policygraph.graph import CancelToken
from policygraph.observability import record_analysis
from policygraph.orchestrator import ImpactAnalysisOrchestrator
from policygraph.report import render_report, resolve_format

router = APIRouter(tags=["policies"])

_DISCONNECT_POLL_SECONDS = 0.05


def _orchestrator(request: Request) -> ImpactAnalysisOrchestrator:
    return request.app.state.orchestrator


async def _run_cancellable(request: Request, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a read in the threadpool, cancelling it if the client goes away."""
    token = CancelToken()

    async def watch() -> None:
        while not token.cancelled:
            if await request.is_disconnected():
                token.cancel()
                return
            await asyncio.sleep(_DISCONNECT_POLL_SECONDS)

    watcher = asyncio.create_task(watch())
    try:
        return await run_in_threadpool(fn, *args, cancel=token, **kwargs)
    finally:
        watcher.cancel()


async def _analyze(request: Request, policy_id: str, max_depth: int | None, principal: dict):
    start = time.perf_counter()
    analysis = await _run_cancellable(
        request, _orchestrator(request).get_impact_analysis,
        policy_id, max_depth, analyzed_by=principal.get("actor"),
    )
    record_analysis(
        analysis.risk_assessment.risk_level.value,
        duration=time.perf_counter() - start,
        node_count=len(analysis.dependency_graph.nodes),
    )
    return analysis


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@router.get("/policy/{policy_id}/impact-analysis")
async def impact_analysis(
    request: Request,
    policy_id: str,
    maxDepth: int | None = Query(default=None),
    principal: dict = Depends(require_viewer),
):
    analysis = await _analyze(request, policy_id, maxDepth, principal)
    return analysis.to_dict()


@router.get("/policy/{policy_id}/dependency-graph")
async def dependency_graph(
    request: Request,
    policy_id: str,
    maxDepth: int | None = Query(default=None),
    principal: dict = Depends(require_viewer),
):
    graph = await _run_cancellable(request, _orchestrator(request).build_graph, policy_id, maxDepth)
    return graph.to_dict()


@router.get("/policy/{policy_id}/risk-assessment")
async def risk_assessment(
    request: Request,
    policy_id: str,
    maxDepth: int | None = Query(default=None),
    principal: dict = Depends(require_viewer),
):
    risk = await _run_cancellable(request, _orchestrator(request).assess_risk, policy_id, maxDepth)
    return risk.to_dict()


@router.get("/policy/{policy_id}/change-scope")
async def change_scope(
    request: Request,
    policy_id: str,
    maxDepth: int | None = Query(default=None),
    principal: dict = Depends(require_viewer),
):
    scope = await _run_cancellable(
        request, _orchestrator(request).calculate_change_scope, policy_id, maxDepth,
    )
    return scope.to_dict()


@router.get("/policy/{policy_id}/impact-report")
async def impact_report(
    request: Request,
    policy_id: str,
    fmt: str = Query(default="json", alias="format"),
    maxDepth: int | None = Query(default=None),
    principal: dict = Depends(require_viewer),
):
    fmt = resolve_format(fmt)
    analysis = await _analyze(request, policy_id, maxDepth, principal)
    body, media_type = render_report(analysis, fmt)
    if media_type == "application/json":
        return JSONResponse(content=body)
    if media_type == "text/html":
        return HTMLResponse(content=body)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="impact-{policy_id}.pdf"'},
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

@router.get("/policy/{policy_id}/dependencies")
def list_dependencies(
    request: Request,
    policy_id: str,
    principal: dict = Depends(require_viewer),
):
    return [d.to_dict() for d in _orchestrator(request).list_dependencies(policy_id)]


@router.post("/policy/{policy_id}/dependencies", status_code=201)
def create_dependency(
    request: Request,
    policy_id: str,
    body: DependencyBody,
    principal: dict = Depends(require_operator),
):
    dto = {**body.model_dump(), "policyId": policy_id}
    created = _orchestrator(request).create_dependency(dto, created_by=principal.get("actor", "system"))
    return created.to_dict()


@router.post("/policy/{policy_id}/dependencies/bulk")
def bulk_create_dependencies(
    request: Request,
    policy_id: str,
    body: BulkDependencyBody,
    principal: dict = Depends(require_operator),
):
    dtos = [{**item.model_dump(), "policyId": policy_id} for item in body.dependencies]
    result = _orchestrator(request).bulk_create_dependencies(
        dtos, created_by=principal.get("actor", "system"),
    )
    return {"created": [d.to_dict() for d in result["created"]], "errors": result["errors"]}


@router.patch("/dependencies/{dependency_id}")
def update_dependency(
    request: Request,
    dependency_id: str,
    body: DependencyUpdateBody,
    principal: dict = Depends(require_operator),
):
    updated = _orchestrator(request).update_dependency(
        dependency_id,
        strength=body.dependencyStrength,
        notes=body.notes,
        metadata=body.metadata,
    )
    return updated.to_dict()


@router.delete("/dependencies/{dependency_id}")
def delete_dependency(
    request: Request,
    dependency_id: str,
    principal: dict = Depends(require_operator),
):
    _orchestrator(request).delete_dependency(dependency_id)
    return {"ok": True, "id": dependency_id}


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

@router.put("/policy/{policy_id}")
def register_policy(
    request: Request,
    policy_id: str,
    body: PolicyBody,
    principal: dict = Depends(require_operator),
):
    policy = _orchestrator(request).register_policy(
        policy_id, title=body.title, category=body.category, version=body.version,
    )
    return policy.to_dict()


@router.put("/dependents/{dependent_type}/{dependent_id}/metadata")
def set_dependent_metadata(
    request: Request,
    dependent_type: str,
    dependent_id: str,
    body: DependentMetadataBody,
    principal: dict = Depends(require_operator),
):
    meta = _orchestrator(request).set_dependent_metadata(
        dependent_type, dependent_id,
        name=body.name, department=body.department, is_critical=body.isCritical,
    )
    return {"dependentType": dependent_type, "dependentId": dependent_id, **meta.to_dict()}
