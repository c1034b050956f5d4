"""API-key authentication and role checks.

Keys come from ``POLICYGRAPH_API_KEYS`` as ``key:role:actor`` entries
separated by commas, and are compared by SHA-256 digest.
"""

from __future__ import annotations

import hashlib
import logging
import os
from typing import Any

from fastapi import HTTPException, Request

log = logging.getLogger("policygraph.auth")

# --- Auth constants ---
_KEY_PREFIX_LEN = 4             # characters of API key shown in logs


# ---------------------------------------------------------------------------
# Role hierarchy
# ---------------------------------------------------------------------------

ROLE_RANK = {"viewer": 0, "operator": 1, "admin": 2}

ANONYMOUS = {"role": "admin", "actor": "anonymous"}


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------

def _hash_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def _parse_api_keys() -> dict[str, dict[str, str]]:
    """Parse POLICYGRAPH_API_KEYS env var: key:role:actor"""
    raw = os.environ.get("POLICYGRAPH_API_KEYS", "")
    if not raw:
        return {}
    keys: dict[str, dict[str, str]] = {}
    for entry in raw.split(","):
        parts = entry.strip().split(":")
        if len(parts) >= 3:
            k, role, actor = parts[0], parts[1], parts[2]
            keys[_hash_key(k)] = {
                "role": role,
                "actor": actor,
                "key_prefix": k[:_KEY_PREFIX_LEN],
            }
    return keys


def _auth_required() -> bool:
    return os.environ.get("POLICYGRAPH_AUTH_REQUIRED", "1") == "1"


def _authorize_request(headers: dict[str, str], min_role: str) -> dict[str, Any] | None:
    """Returns principal dict or None if unauthorized."""
    if not _auth_required():
        return dict(ANONYMOUS)

    api_key = headers.get("x-api-key", "")
    if not api_key:
        return None
    principal = _parse_api_keys().get(_hash_key(api_key))
    if principal is None:
        return None
    if ROLE_RANK.get(principal["role"], -1) < ROLE_RANK.get(min_role, 99):
        return None
    return principal


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def _authenticate(api_key: str, method: str, path: str) -> dict[str, Any]:
    """Validate API key and return principal, or raise 401."""
    if not api_key:
        log.info("Access denied: %s %s (no_api_key)", method, path)
        raise HTTPException(status_code=401, detail="Unauthorized")

    principal = _parse_api_keys().get(_hash_key(api_key))
    if principal is None:
        log.info("Access denied: %s %s (invalid_key %s...)", method, path,
                 api_key[:_KEY_PREFIX_LEN])
        raise HTTPException(status_code=401, detail="Unauthorized")
    return principal


def _authorize_role(principal: dict[str, Any], min_role: str, method: str, path: str) -> None:
    """Check role, raise 401 if insufficient."""
    if ROLE_RANK.get(principal["role"], -1) < ROLE_RANK.get(min_role, 99):
        log.info(
            "Access denied: %s %s (insufficient_role %s < %s)",
            method, path, principal.get("role"), min_role,
            extra={"actor": principal.get("actor")},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


def _resolve_principal(request: Request, min_role: str) -> dict[str, Any]:
    """Authenticate and authorize a request, raising HTTPException on failure."""
    if not _auth_required():
        return dict(ANONYMOUS)

    method = request.method
    path = request.url.path
    principal = _authenticate(request.headers.get("x-api-key", ""), method, path)
    _authorize_role(principal, min_role, method, path)
    if method != "GET":
        log.info("Access granted: %s %s", method, path, extra={"actor": principal.get("actor")})
    return principal


def require_viewer(request: Request) -> dict[str, Any]:
    return _resolve_principal(request, "viewer")


def require_operator(request: Request) -> dict[str, Any]:
    return _resolve_principal(request, "operator")
