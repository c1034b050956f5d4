"""Single source of truth for shared constants and configuration defaults.

Every threshold or weight used by the scorer, the scope classifier and the
orchestrator is defined here.  Environment overrides are read at call time
so tests can patch ``os.environ``.
"""

from __future__ import annotations

import os
import re

from policygraph.models import DependencyStrength, DependentType


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

DEFAULT_DB_PATH = ".policygraph/state.db"
STORAGE_BACKENDS = ("sqlite", "postgres")
DEFAULT_PG_POOL_MIN = 2
DEFAULT_PG_POOL_MAX = 10


def storage_backend() -> str:
    """Backend name from ``POLICYGRAPH_DB_BACKEND``; ``sqlite`` when unset."""
    return (os.environ.get("POLICYGRAPH_DB_BACKEND") or "sqlite").strip().lower()


def sqlite_path() -> str:
    return os.environ.get("POLICYGRAPH_DB_PATH") or DEFAULT_DB_PATH


def postgres_dsn() -> str | None:
    return os.environ.get("POLICYGRAPH_PG_DSN") or None


def postgres_pool_size() -> tuple[int, int]:
    """``(min, max)`` pool size from ``POLICYGRAPH_PG_POOL_MIN`` / ``_MAX``."""
    sizes = []
    for var, fallback in (("POLICYGRAPH_PG_POOL_MIN", DEFAULT_PG_POOL_MIN),
                          ("POLICYGRAPH_PG_POOL_MAX", DEFAULT_PG_POOL_MAX)):
        raw = os.environ.get(var, "").strip()
        sizes.append(int(raw) if raw.isdigit() and int(raw) > 0 else fallback)
    low, high = sizes
    return low, max(low, high)

# ---------------------------------------------------------------------------
# Graph traversal
# ---------------------------------------------------------------------------

DEFAULT_MAX_DEPTH = 5
MAX_GRAPH_DEPTH = 25            # hard ceiling accepted from callers

POLICY_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")


def default_max_depth() -> int:
    """Traversal depth used when a caller does not pass one."""
    raw = os.environ.get("POLICYGRAPH_DEFAULT_MAX_DEPTH", "")
    if raw.strip().isdigit():
        return min(int(raw), MAX_GRAPH_DEPTH)
    return DEFAULT_MAX_DEPTH


# ---------------------------------------------------------------------------
# Dependency strength
# ---------------------------------------------------------------------------

DEFAULT_STRENGTH_BY_TYPE: dict[DependentType, DependencyStrength] = {
    DependentType.WORKFLOW: DependencyStrength.STRONG,
    DependentType.MODULE: DependencyStrength.MEDIUM,
    DependentType.TEMPLATE: DependencyStrength.WEAK,
    DependentType.ASSESSMENT: DependencyStrength.MEDIUM,
    DependentType.TRAINING: DependencyStrength.WEAK,
    DependentType.DOCUMENT: DependencyStrength.WEAK,
}


# ---------------------------------------------------------------------------
# Risk scoring
# ---------------------------------------------------------------------------

STRENGTH_WEIGHTS: dict[DependencyStrength, int] = {
    DependencyStrength.STRONG: 12,
    DependencyStrength.MEDIUM: 5,
    DependencyStrength.WEAK: 1,
}

RISK_SCORE_MIN = 0
RISK_SCORE_MAX = 100

RISK_CLASSIFICATION_THRESHOLDS: dict[str, int] = {
    "low": 0,
    "medium": 30,
    "high": 60,
    "critical": 80,
}

SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# ---------------------------------------------------------------------------
# Change scope
# ---------------------------------------------------------------------------

CONCENTRATED_DEPARTMENT_MIN = 3   # dependents needed for a department to weigh 2
SYSTEM_WIDE_RADIUS = 7            # radius strictly above this is system-wide
SYSTEM_WIDE_DEPARTMENTS = 3       # more departments than this is system-wide

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

COMPLIANCE_NOTIFY_SCORE = 30
