"""
contracts/graph_definitions.py

Static graph/display definitions published to the monitoring agent.

Two groups are always published, however many target groups exist:
- ``<prefix>``   : load-balancer level percentiles
- ``<prefix>.#`` : percentiles per target group; ``#`` is the agent's
                   wildcard and matches the target group segment of the key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from contracts.alb_metrics import DEFAULT_METRIC_KEY_PREFIX, PERCENTILES

UNIT_FLOAT = "float"


@dataclass(frozen=True)
class GraphMetric:
    name: str
    label: str
    stacked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "label": self.label, "stacked": self.stacked}


@dataclass(frozen=True)
class GraphSpec:
    """One display group: label, unit and ordered constituent metrics."""
    label: str
    unit: str
    metrics: tuple[GraphMetric, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "unit": self.unit,
            "metrics": [m.to_dict() for m in self.metrics],
        }


def _percentile_metrics() -> tuple[GraphMetric, ...]:
    return tuple(GraphMetric(name=p, label=p) for p in PERCENTILES)


def graph_definitions(prefix: str = DEFAULT_METRIC_KEY_PREFIX) -> dict[str, GraphSpec]:
    """Return the graph definitions keyed by graph name."""
    base = str(prefix or DEFAULT_METRIC_KEY_PREFIX).strip(".")
    return {
        base: GraphSpec(
            label="Response Time Percentile",
            unit=UNIT_FLOAT,
            metrics=_percentile_metrics(),
        ),
        f"{base}.#": GraphSpec(
            label="Response Time Percentile per Target Group",
            unit=UNIT_FLOAT,
            metrics=_percentile_metrics(),
        ),
    }


__all__ = ["UNIT_FLOAT", "GraphMetric", "GraphSpec", "graph_definitions"]
