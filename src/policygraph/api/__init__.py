"""FastAPI application factory for policygraph."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from policygraph.adapters.store_factory import create_store
from policygraph.errors import (
    CancellationError,
    DuplicateDependencyError,
    NotFoundError,
    ValidationError,
)
from policygraph.observability import add_observability_middleware
from policygraph.orchestrator import ImpactAnalysisOrchestrator
from policygraph.ports import DependencyRepository

from policygraph.api.routers import health, policies

log = logging.getLogger("policygraph.api")

# nginx convention for "client closed request"
HTTP_CLIENT_CLOSED_REQUEST = 499


def create_app(
    db_path: str | Path = "",
    store: DependencyRepository | None = None,
) -> FastAPI:
    """Build and return a configured FastAPI application.

    *store* wins over *db_path*; with neither, the backend comes from the
    ``POLICYGRAPH_DB_*`` environment.
    """
    app = FastAPI(
        title="policygraph",
        description="Policy dependency graph and change impact analysis",
        version="0.1.0",
    )

    if store is None:
        store = create_store(db_path=db_path or None)
    app.state.orchestrator = ImpactAnalysisOrchestrator(store)

    # ---------------------------------------------------------------
    # Exception handlers: {"error": "..."} bodies
    # ---------------------------------------------------------------

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = ".".join(str(l) for l in first.get("loc", []))
            msg = first.get("msg", "Invalid input")
            detail = f"{loc}: {msg}" if loc else msg
        else:
            detail = "Invalid JSON body"
        return JSONResponse(
            status_code=400,
            content={"error": detail},
        )

    @app.exception_handler(ValidationError)
    async def domain_validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc), "fields": exc.fields})

    @app.exception_handler(DuplicateDependencyError)
    async def duplicate_handler(request: Request, exc: DuplicateDependencyError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(CancellationError)
    async def cancellation_handler(request: Request, exc: CancellationError):
        log.info("Request cancelled: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=HTTP_CLIENT_CLOSED_REQUEST, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        log.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": str(exc)},
        )

    add_observability_middleware(app)

    # ---------------------------------------------------------------
    # Routers: mounted at /api (legacy) and /v1 (canonical)
    # ---------------------------------------------------------------

    api = APIRouter()
    api.include_router(policies.router)

    app.include_router(api, prefix="/api")
    app.include_router(api, prefix="/v1")

    # Health + metrics (no auth, no version prefix)
    app.include_router(health.router)

    return app
