"""CLI commands: seeding, dependency edges, analysis, server."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from policygraph.cli._helpers import _orchestrator, _out
from policygraph.report import render_report


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

def cmd_policy_register(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        policy = orch.register_policy(
            args.policy_id, title=args.title, category=args.category, version=args.version,
        )
    return _out(policy.to_dict())


def cmd_metadata_set(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        meta = orch.set_dependent_metadata(
            args.dependent_type, args.dependent_id,
            name=args.name, department=args.department, is_critical=args.critical,
        )
    return _out({"dependentType": args.dependent_type, "dependentId": args.dependent_id,
                 **meta.to_dict()})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def cmd_dependency_add(args: argparse.Namespace) -> int:
    dto = {
        "policyId": args.policy_id,
        "dependentType": args.dependent_type,
        "dependentId": args.dependent_id,
        "dependencyStrength": args.strength,
        "notes": args.notes,
    }
    with _orchestrator(args) as orch:
        dep = orch.create_dependency(dto, created_by=args.actor)
    return _out(dep.to_dict())


def cmd_dependency_list(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        deps = orch.list_dependencies(args.policy_id)
    return _out([d.to_dict() for d in deps])


def cmd_dependency_update(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        dep = orch.update_dependency(args.dependency_id, strength=args.strength, notes=args.notes)
    return _out(dep.to_dict())


def cmd_dependency_remove(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        orch.delete_dependency(args.dependency_id)
    return _out({"ok": True, "id": args.dependency_id})


def cmd_dependency_import(args: argparse.Namespace) -> int:
    with open(args.file) as f:
        dtos = json.load(f)
    if not isinstance(dtos, list):
        return _out({"error": "Import file must contain a JSON list"})
    with _orchestrator(args) as orch:
        result = orch.bulk_create_dependencies(dtos, created_by=args.actor)
    return _out({"created": [d.to_dict() for d in result["created"]], "errors": result["errors"]})


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def cmd_analyze(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        analysis = orch.get_impact_analysis(args.policy_id, args.max_depth, analyzed_by=args.actor)
    return _out(analysis.to_dict())


def cmd_graph(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        graph = orch.build_graph(args.policy_id, args.max_depth)
    return _out(graph.to_dict())


def cmd_risk(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        risk = orch.assess_risk(args.policy_id, args.max_depth)
    return _out(risk.to_dict())


def cmd_scope(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        scope = orch.calculate_change_scope(args.policy_id, args.max_depth)
    return _out(scope.to_dict())


def cmd_report(args: argparse.Namespace) -> int:
    with _orchestrator(args) as orch:
        analysis = orch.get_impact_analysis(args.policy_id, args.max_depth, analyzed_by=args.actor)
    body, _media_type = render_report(analysis, args.fmt)

    if args.fmt == "json":
        if not args.output:
            return _out(body)
        body = json.dumps(body, indent=2, default=str)

    if args.output:
        path = Path(args.output)
        if isinstance(body, bytes):
            path.write_bytes(body)
        else:
            path.write_text(body)
        return _out({"ok": True, "format": args.fmt, "output": str(path)})

    if isinstance(body, bytes):
        sys.stdout.buffer.write(body)
        sys.stdout.buffer.flush()
    else:
        sys.stdout.write(body)
    return 0


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

def cmd_serve(args: argparse.Namespace) -> int:
    from policygraph import server
    server.serve(db_path=args.db, host=args.host, port=args.port, backend=args.backend, dsn=args.dsn)
    return 0
