"""Render snapshots and graph definitions in the agent plugin format.

Metric lines::

    alb.p99<TAB>0.123000<TAB>1760870400

Graph definitions are requested by the agent with
``MACKEREL_AGENT_PLUGIN_META=1`` and answered with a header line followed by
one JSON document.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from datetime import datetime
from typing import IO

from contracts.alb_metrics import MetricSnapshot
from contracts.graph_definitions import GraphSpec

META_ENV_VAR = "MACKEREL_AGENT_PLUGIN_META"
META_HEADER = "# mackerel-agent-plugin"


def wants_graph_definitions(env: Mapping[str, str] | None = None) -> bool:
    runtime_env = os.environ if env is None else env
    return str(runtime_env.get(META_ENV_VAR, "")).strip() == "1"


def format_metric_lines(snapshot: MetricSnapshot, *, collected_at: datetime) -> list[str]:
    """One ``key\\tvalue\\tepoch`` line per metric, in snapshot (sorted) order."""
    epoch = int(collected_at.timestamp())
    return [f"{key}\t{snapshot[key]:f}\t{epoch}" for key in snapshot]


def graph_definition_document(graphs: Mapping[str, GraphSpec]) -> str:
    payload = {"graphs": {name: spec.to_dict() for name, spec in graphs.items()}}
    return META_HEADER + "\n" + json.dumps(payload, ensure_ascii=False)


def emit_metrics(snapshot: MetricSnapshot, *, collected_at: datetime, out: IO[str]) -> int:
    """Write all metric lines at once; returns the number of lines."""
    lines = format_metric_lines(snapshot, collected_at=collected_at)
    if lines:
        out.write("\n".join(lines) + "\n")
    out.flush()
    return len(lines)


def emit_graph_definitions(graphs: Mapping[str, GraphSpec], *, out: IO[str]) -> None:
    out.write(graph_definition_document(graphs) + "\n")
    out.flush()
