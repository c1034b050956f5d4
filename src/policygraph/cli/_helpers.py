"""Shared CLI helpers."""

from __future__ import annotations

import argparse
import json
from contextlib import contextmanager
from typing import Any, Iterator

from policygraph.adapters.store_factory import create_store
from policygraph.defaults import sqlite_path
from policygraph.orchestrator import ImpactAnalysisOrchestrator


def _default_db() -> str:
    return sqlite_path()


def _out(data: Any) -> int:
    print(json.dumps(data, indent=2, default=str))
    if isinstance(data, dict) and "error" in data:
        return 1
    return 0


@contextmanager
def _orchestrator(args: argparse.Namespace) -> Iterator[ImpactAnalysisOrchestrator]:
    store = create_store(backend=args.backend, db_path=args.db, dsn=args.dsn)
    try:
        yield ImpactAnalysisOrchestrator(store)
    finally:
        store.close()
