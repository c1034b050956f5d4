"""Tests for the HTTP server entry point and a live uvicorn instance."""

import json
import os
from unittest.mock import patch
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest

from policygraph import server


# ---------------------------------------------------------------------------
# Unit tests: serve()
# ---------------------------------------------------------------------------

class TestServe:
    def test_serve_runs_uvicorn_with_app(self, db_path):
        with patch("policygraph.server.uvicorn.run") as run, \
                patch("policygraph.server.setup_logging") as setup:
            server.serve(db_path=db_path, host="0.0.0.0", port=9001)
        setup.assert_called_once()
        run.assert_called_once()
        app = run.call_args.args[0]
        assert hasattr(app.state, "orchestrator")
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        assert run.call_args.kwargs["port"] == 9001
        assert run.call_args.kwargs["log_config"] is None

    def test_serve_closes_store_on_exit(self, db_path):
        with patch("policygraph.server.uvicorn.run", side_effect=KeyboardInterrupt), \
                patch("policygraph.server.setup_logging"), \
                patch("policygraph.server.create_store") as factory:
            with pytest.raises(KeyboardInterrupt):
                server.serve(db_path=db_path)
        factory.return_value.close.assert_called_once()


# ---------------------------------------------------------------------------
# Integration tests: live FastAPI/uvicorn server
# ---------------------------------------------------------------------------

def _post(url, payload):
    req = Request(
        url,
        data=json.dumps(payload).encode(),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    return urlopen(req)


@pytest.mark.integration
class TestHTTPEndpoints:
    def test_health(self, live_server):
        resp = urlopen(f"{live_server}/health")
        assert json.loads(resp.read())["status"] == "ok"

    def test_create_then_analyze(self, live_server):
        resp = _post(f"{live_server}/api/policy/pol-1/dependencies",
                     {"dependentType": "workflow", "dependentId": "wf-1"})
        assert resp.status == 201

        resp = urlopen(f"{live_server}/api/policy/pol-1/impact-analysis")
        data = json.loads(resp.read())
        assert data["riskAssessment"]["overallRiskScore"] == 12

    def test_unknown_policy_404(self, live_server):
        try:
            urlopen(f"{live_server}/v1/policy/ghost/risk-assessment")
            assert False, "Expected 404"
        except HTTPError as e:
            assert e.code == 404
            assert "not found" in json.loads(e.read())["error"]

    def test_invalid_body_400(self, live_server):
        try:
            _post(f"{live_server}/api/policy/pol-1/dependencies", {"dependentType": "workflow"})
            assert False, "Expected 400"
        except HTTPError as e:
            assert e.code == 400

    def test_auth_required_returns_401(self, live_server):
        with patch.dict(os.environ, {"POLICYGRAPH_AUTH_REQUIRED": "1", "POLICYGRAPH_API_KEYS": ""}):
            try:
                urlopen(f"{live_server}/api/policy/pol-1/dependencies")
                assert False, "Expected 401"
            except HTTPError as e:
                assert e.code == 401
