"""Shared fixtures for policygraph tests."""

import os
import socket
import threading
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from policygraph.adapters.sqlite_store import SqliteStore
from policygraph.observability import reset_metrics
from policygraph.orchestrator import ImpactAnalysisOrchestrator


# ---------------------------------------------------------------------------
# Auto-use fixtures: cleanup global state between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    """Reset in-process metric counters after every test."""
    yield
    reset_metrics()


# ---------------------------------------------------------------------------
# Store / engine
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh SQLite database for each test."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(db_path):
    """Return a fresh SqliteStore."""
    s = SqliteStore(db_path)
    yield s
    s.close()


@pytest.fixture
def orchestrator(store):
    return ImpactAnalysisOrchestrator(store)


@pytest.fixture
def client(store):
    """TestClient over the FastAPI app with auth disabled."""
    from policygraph.api import create_app

    with patch.dict(os.environ, {"POLICYGRAPH_AUTH_REQUIRED": "0"}):
        app = create_app(store=store)
        with TestClient(app) as c:
            yield c


# ---------------------------------------------------------------------------
# Shared live_server fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def live_server(db_path):
    """Start a FastAPI/uvicorn server on a random port for testing.

    Auth is disabled for the lifetime of the server.
    """
    import uvicorn
    from policygraph.api import create_app

    with patch.dict(os.environ, {"POLICYGRAPH_AUTH_REQUIRED": "0"}):
        app = create_app(db_path=str(db_path))

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]

        config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="error")
        server = uvicorn.Server(config)
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()

        deadline = time.time() + 10
        while not server.started and time.time() < deadline:
            time.sleep(0.05)

        yield f"http://127.0.0.1:{port}"

        server.should_exit = True
        thread.join(timeout=5)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def add_dep(orch, policy_id, dependent_type, dependent_id, strength=None, **kw):
    """Shared test helper: create one dependency edge and return it.

    Usage::

        from conftest import add_dep
        add_dep(orchestrator, "pol-1", "workflow", "wf-1", "strong")
    """
    dto = {
        "policyId": policy_id,
        "dependentType": dependent_type,
        "dependentId": dependent_id,
        "dependencyStrength": strength,
        **kw,
    }
    return orch.create_dependency(dto, created_by="test")


def make_chain(orch, length, prefix="n"):
    """Linear chain n0 -> n1 -> ... -> n<length>, all module edges."""
    for i in range(length):
        add_dep(orch, f"{prefix}{i}", "module", f"{prefix}{i + 1}", "medium")
    return f"{prefix}0"


# ---------------------------------------------------------------------------
# Marker registration and auto-tagging
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks integration tests (live server)")


def pytest_collection_modifyitems(items):
    """Auto-mark tests that use the live_server fixture as integration."""
    for item in items:
        if "live_server" in item.fixturenames:
            item.add_marker(pytest.mark.integration)
