"""Error taxonomy for the impact analysis engine.

Each error maps to one HTTP status in ``policygraph.api``:

  - ValidationError          -> 400
  - DuplicateDependencyError -> 400
  - NotFoundError            -> 404
  - CancellationError        -> 499 (caller went away; logged, not reported)

Backing-store exceptions are never wrapped.
"""

from __future__ import annotations


class PolicyGraphError(Exception):
    """Base class for engine errors."""


class ValidationError(PolicyGraphError, ValueError):
    """Missing or malformed input."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])

    @classmethod
    def missing(cls, fields: list[str]) -> ValidationError:
        return cls(f"Missing required fields: {', '.join(fields)}", fields)


class DuplicateDependencyError(PolicyGraphError, ValueError):
    """The (policy, dependent type, dependent id) triple already exists."""

    def __init__(self, policy_id: str, dependent_type: str, dependent_id: str) -> None:
        super().__init__(
            f"Dependency already exists: {policy_id} -> {dependent_type}:{dependent_id}"
        )
        self.key = (policy_id, dependent_type, dependent_id)


class NotFoundError(PolicyGraphError, LookupError):
    """Unknown policy or dependency id."""


class CancellationError(PolicyGraphError):
    """Traversal stopped because the caller cancelled the request."""
