"""Argparse parser definition for the policygraph CLI."""

from __future__ import annotations

import argparse

from policygraph.cli._helpers import _default_db
from policygraph.models import DependencyStrength, DependentType
from policygraph.report import REPORT_FORMATS

_TYPES = [t.value for t in DependentType]
_STRENGTHS = [s.value for s in DependencyStrength]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policygraph",
        description="Policy dependency graph and change impact analysis",
    )
    parser.add_argument("--db", default=_default_db(),
                        help="SQLite database path")
    parser.add_argument("--backend", choices=["sqlite", "postgres"], default=None,
                        help="Storage backend (default: POLICYGRAPH_DB_BACKEND or sqlite)")
    parser.add_argument("--dsn", default=None, help="PostgreSQL DSN for --backend postgres")
    parser.add_argument("--actor", default="system", help="Actor identity recorded on writes")
    sub = parser.add_subparsers(dest="command")

    _register_policy_commands(sub)
    _register_dependency_commands(sub)
    _register_analysis_commands(sub)
    _register_server_commands(sub)

    return parser


def _add_depth(p: argparse.ArgumentParser) -> None:
    p.add_argument("--max-depth", type=int, default=None,
                   help="Traversal depth (default: POLICYGRAPH_DEFAULT_MAX_DEPTH or 5)")


def _register_policy_commands(sub: argparse._SubParsersAction) -> None:
    # -- policy --
    policy_p = sub.add_parser("policy", help="Policy records")
    policy_sub = policy_p.add_subparsers(dest="policy_cmd")

    p = policy_sub.add_parser("register", help="Register or update a policy")
    p.add_argument("--policy-id", required=True)
    p.add_argument("--title", default="")
    p.add_argument("--category", default="")
    p.add_argument("--version", default="1.0")

    # -- metadata --
    meta_p = sub.add_parser("metadata", help="Dependent metadata (department, criticality)")
    meta_sub = meta_p.add_subparsers(dest="metadata_cmd")

    p = meta_sub.add_parser("set", help="Set metadata for a dependent")
    p.add_argument("--type", dest="dependent_type", required=True, choices=_TYPES)
    p.add_argument("--id", dest="dependent_id", required=True)
    p.add_argument("--name")
    p.add_argument("--department")
    p.add_argument("--critical", action="store_true")


def _register_dependency_commands(sub: argparse._SubParsersAction) -> None:
    # -- dependency --
    dep_p = sub.add_parser("dependency", help="Dependency edges")
    dep_sub = dep_p.add_subparsers(dest="dependency_cmd")

    p = dep_sub.add_parser("add", help="Create a dependency edge")
    p.add_argument("--policy-id", required=True)
    p.add_argument("--type", dest="dependent_type", required=True, choices=_TYPES)
    p.add_argument("--id", dest="dependent_id", required=True)
    p.add_argument("--strength", choices=_STRENGTHS,
                   help="Dependency strength (default derived from type)")
    p.add_argument("--notes")

    p = dep_sub.add_parser("list", help="List direct dependencies of a policy")
    p.add_argument("--policy-id", required=True)

    p = dep_sub.add_parser("update", help="Update a dependency edge")
    p.add_argument("--dependency-id", required=True)
    p.add_argument("--strength", choices=_STRENGTHS)
    p.add_argument("--notes")

    p = dep_sub.add_parser("remove", help="Delete a dependency edge")
    p.add_argument("--dependency-id", required=True)

    p = dep_sub.add_parser("import", help="Bulk create edges from a JSON file")
    p.add_argument("--file", required=True, help="JSON list of dependency objects")


def _register_analysis_commands(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("analyze", help="Full impact analysis")
    p.add_argument("--policy-id", required=True)
    _add_depth(p)

    p = sub.add_parser("graph", help="Dependency graph")
    p.add_argument("--policy-id", required=True)
    _add_depth(p)

    p = sub.add_parser("risk", help="Risk assessment")
    p.add_argument("--policy-id", required=True)
    _add_depth(p)

    p = sub.add_parser("scope", help="Change scope")
    p.add_argument("--policy-id", required=True)
    _add_depth(p)

    p = sub.add_parser("report", help="Render an impact report")
    p.add_argument("--policy-id", required=True)
    p.add_argument("--format", dest="fmt", choices=list(REPORT_FORMATS), default="json")
    p.add_argument("--output", help="Write the report to a file instead of stdout")
    _add_depth(p)


def _register_server_commands(sub: argparse._SubParsersAction) -> None:
    # -- serve --
    p = sub.add_parser("serve", help="Start HTTP API server")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=9876)
