"""HTTP server entry point: JSON logging plus the FastAPI app under uvicorn."""

from __future__ import annotations

import logging
from pathlib import Path

import uvicorn

from policygraph.adapters.store_factory import create_store
from policygraph.api import create_app
from policygraph.observability import setup_logging

log = logging.getLogger("policygraph.server")


def serve(
    db_path: str | Path,
    host: str = "127.0.0.1",
    port: int = 9876,
    backend: str | None = None,
    dsn: str | None = None,
) -> None:
    """Start the HTTP API server (blocks until interrupted)."""
    setup_logging()
    store = create_store(backend=backend, db_path=db_path, dsn=dsn)
    app = create_app(store=store)
    log.info("Starting policygraph API on %s:%d", host, port)
    try:
        uvicorn.run(app, host=host, port=port, log_config=None)
    finally:
        store.close()
