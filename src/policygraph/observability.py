"""Observability: JSON logs, access log, and Prometheus text metrics.

HTTP series are labelled by route template (``/api/policy/{policy_id}/...``),
never by the concrete path, so the series count is bounded by the number of
routes. Impact analyses are counted by risk level together with their
latency and graph size.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections import defaultdict
from typing import Any

from fastapi import FastAPI, Request, Response

_HTTP_ERROR_THRESHOLD = 500
_HTTP_CLIENT_CLOSED = 499
_MS_PER_SECOND = 1000
UNMATCHED_ROUTE = "unmatched"

# Record attributes copied into the JSON line when a caller passes them via ``extra=``
_EXTRA_FIELDS = ("policy_id", "actor", "method", "route", "path", "status_code",
                 "duration_ms", "trace_id")


# ---------------------------------------------------------------------------
# Structured JSON logging
# ---------------------------------------------------------------------------

class JsonFormatter(logging.Formatter):
    """One JSON object per record, including any known ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in _EXTRA_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str | None = None) -> None:
    """Route all loggers through one JSON stream handler.

    *level* falls back to ``POLICYGRAPH_LOG_LEVEL`` (default ``INFO``).
    """
    level = level or os.environ.get("POLICYGRAPH_LOG_LEVEL", "INFO")
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # the access middleware already logs every request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Metrics registry
# ---------------------------------------------------------------------------

class _Metrics:
    """In-process counters; sync routes record from threadpool workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        self.requests: dict[tuple[str, str, int], int] = defaultdict(int)
        self.latency: dict[tuple[str, str], list[float]] = defaultdict(lambda: [0.0, 0])
        self.errors: dict[tuple[str, str], int] = defaultdict(int)
        self.cancelled: dict[str, int] = defaultdict(int)
        self.analyses: dict[str, int] = defaultdict(int)
        self.analysis_seconds = [0.0, 0]
        self.analysis_nodes = 0

    def request(self, method: str, route: str, status: int, duration: float) -> None:
        with self._lock:
            self.requests[(method, route, status)] += 1
            bucket = self.latency[(method, route)]
            bucket[0] += duration
            bucket[1] += 1
            if status >= _HTTP_ERROR_THRESHOLD:
                self.errors[(method, route)] += 1
            elif status == _HTTP_CLIENT_CLOSED:
                self.cancelled[route] += 1

    def analysis(self, risk_level: str, duration: float | None, node_count: int | None) -> None:
        with self._lock:
            self.analyses[risk_level] += 1
            if duration is not None:
                self.analysis_seconds[0] += duration
                self.analysis_seconds[1] += 1
            if node_count:
                self.analysis_nodes += node_count

    def render(self) -> list[str]:
        with self._lock:
            out = _family("policygraph_http_requests_total", "counter",
                          "HTTP requests by method, route template and status.")
            for (method, route, status), n in sorted(self.requests.items()):
                out.append(f'policygraph_http_requests_total{{method="{method}",route="{route}",status="{status}"}} {n}')

            out += _family("policygraph_http_request_duration_seconds", "summary",
                           "Request latency by method and route template.")
            for (method, route), (total, n) in sorted(self.latency.items()):
                labels = f'method="{method}",route="{route}"'
                out.append(f"policygraph_http_request_duration_seconds_sum{{{labels}}} {total:.6f}")
                out.append(f"policygraph_http_request_duration_seconds_count{{{labels}}} {n}")

            out += _family("policygraph_http_errors_total", "counter", "5xx responses.")
            for (method, route), n in sorted(self.errors.items()):
                out.append(f'policygraph_http_errors_total{{method="{method}",route="{route}"}} {n}')

            out += _family("policygraph_cancelled_requests_total", "counter",
                           "Requests abandoned by the client before the traversal finished.")
            for route, n in sorted(self.cancelled.items()):
                out.append(f'policygraph_cancelled_requests_total{{route="{route}"}} {n}')

            out += _family("policygraph_impact_analyses_total", "counter",
                           "Completed impact analyses by risk level.")
            for level, n in sorted(self.analyses.items()):
                out.append(f'policygraph_impact_analyses_total{{risk_level="{level}"}} {n}')

            out += _family("policygraph_impact_analysis_seconds", "summary",
                           "Wall time of impact analyses.")
            out.append(f"policygraph_impact_analysis_seconds_sum {self.analysis_seconds[0]:.6f}")
            out.append(f"policygraph_impact_analysis_seconds_count {self.analysis_seconds[1]}")

            out += _family("policygraph_graph_nodes_total", "counter",
                           "Graph nodes visited across all impact analyses.")
            out.append(f"policygraph_graph_nodes_total {self.analysis_nodes}")
            return out


def _family(name: str, kind: str, help_text: str) -> list[str]:
    return [f"# HELP {name} {help_text}", f"# TYPE {name} {kind}"]


_metrics = _Metrics()


def record_request(method: str, route: str, status: int, duration: float) -> None:
    _metrics.request(method, route, status, duration)


def record_analysis(
    risk_level: str,
    duration: float | None = None,
    node_count: int | None = None,
) -> None:
    _metrics.analysis(risk_level, duration, node_count)


def reset_metrics() -> None:
    with _metrics._lock:
        _metrics.reset()


def generate_metrics() -> str:
    """Prometheus text exposition of every registered series."""
    return "\n".join(_metrics.render()) + "\n"


# ---------------------------------------------------------------------------
# FastAPI middleware
# ---------------------------------------------------------------------------

def route_label(request: Request) -> str:
    """Route template the router matched, or ``unmatched`` for 404s."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


def add_observability_middleware(app: FastAPI) -> None:
    """Access log line and request metrics for every HTTP request."""
    access_log = logging.getLogger("policygraph.access")

    @app.middleware("http")
    async def observe_request(request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        duration = time.perf_counter() - start

        route = route_label(request)
        status = response.status_code
        record_request(request.method, route, status, duration)

        access_log.info(
            "%s %s %d %.0fms",
            request.method, request.url.path, status, duration * _MS_PER_SECOND,
            extra={
                "method": request.method,
                "route": route,
                "path": request.url.path,
                "status_code": status,
                "duration_ms": round(duration * _MS_PER_SECOND, 1),
                "policy_id": request.path_params.get("policy_id"),
                "trace_id": request.headers.get("x-trace-id") or None,
            },
        )
        return response
