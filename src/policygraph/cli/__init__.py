"""CLI for policygraph: grouped subcommands.

Commands:
  policygraph policy register
  policygraph metadata set
  policygraph dependency {add, list, update, remove, import}
  policygraph analyze
  policygraph graph
  policygraph risk
  policygraph scope
  policygraph report
  policygraph serve
"""

from __future__ import annotations

import sys

from policygraph.cli._helpers import _out
from policygraph.cli._parser import build_parser
from policygraph.cli.commands import (
    cmd_analyze,
    cmd_dependency_add,
    cmd_dependency_import,
    cmd_dependency_list,
    cmd_dependency_remove,
    cmd_dependency_update,
    cmd_graph,
    cmd_metadata_set,
    cmd_policy_register,
    cmd_report,
    cmd_risk,
    cmd_scope,
    cmd_serve,
)
from policygraph.errors import PolicyGraphError


# ===================================================================
# Dispatch
# ===================================================================

_DISPATCH = {
    ("policy", "register"): cmd_policy_register,
    ("metadata", "set"): cmd_metadata_set,
    ("dependency", "add"): cmd_dependency_add,
    ("dependency", "list"): cmd_dependency_list,
    ("dependency", "update"): cmd_dependency_update,
    ("dependency", "remove"): cmd_dependency_remove,
    ("dependency", "import"): cmd_dependency_import,
    ("analyze", None): cmd_analyze,
    ("graph", None): cmd_graph,
    ("risk", None): cmd_risk,
    ("scope", None): cmd_scope,
    ("report", None): cmd_report,
    ("serve", None): cmd_serve,
}

# Map subcmd attr names to the dispatch key
_SUBCMD_ATTR = {
    "policy": "policy_cmd",
    "metadata": "metadata_cmd",
    "dependency": "dependency_cmd",
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if not args.command:
        parser.print_help()
        return 1

    subcmd_attr = _SUBCMD_ATTR.get(args.command)
    subcmd = getattr(args, subcmd_attr, None) if subcmd_attr else None
    handler = _DISPATCH.get((args.command, subcmd))
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except PolicyGraphError as exc:
        return _out({"error": str(exc)})
