"""
contracts/alb_metrics.py

Value types shared by discovery, collection and emission.

Goals:
- One immutable Scope passed explicitly (no process-wide plugin state).
- A typed snapshot accumulator instead of an ad-hoc dict of floats.
- Key naming lives in one place so the "no other keys" invariant is easy to audit.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# -----------------------------
# CloudWatch constants
# -----------------------------

NAMESPACE = "AWS/ApplicationELB"
RESPONSE_TIME_METRIC = "TargetResponseTime"

DIM_TARGET_GROUP = "TargetGroup"
DIM_LOAD_BALANCER = "LoadBalancer"

# Order matters: it is the order of ExtendedStatistics and of graph metrics.
PERCENTILES: tuple[str, ...] = ("p99", "p95", "p90", "p50", "p10")

DEFAULT_METRIC_KEY_PREFIX = "alb"

TargetGroupSet = tuple[str, ...]


# -----------------------------
# Scope
# -----------------------------


@dataclass(frozen=True)
class Scope:
    """
    Immutable run scope.

    ``load_balancer`` is the CloudWatch dimension value (``app/<name>/<hash>``).
    None means account-wide collection: the LoadBalancer dimension is then
    omitted from every query, never sent as an empty string.
    """
    load_balancer: str | None = None
    region: str = ""
    access_key_id: str = field(default="", repr=False)
    secret_access_key: str = field(default="", repr=False)
    prefix: str = DEFAULT_METRIC_KEY_PREFIX

    def __post_init__(self) -> None:
        lb = str(self.load_balancer or "").strip()
        object.__setattr__(self, "load_balancer", lb or None)
        object.__setattr__(self, "prefix", str(self.prefix or DEFAULT_METRIC_KEY_PREFIX).strip("."))

    @property
    def has_static_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def load_balancer_dimensions(self) -> list[dict[str, str]]:
        """Dimensions for the aggregate query (empty when unscoped)."""
        if self.load_balancer is None:
            return []
        return [{"Name": DIM_LOAD_BALANCER, "Value": self.load_balancer}]

    def target_group_dimensions(self, target_group: str) -> list[dict[str, str]]:
        """Dimensions for one target group, plus the LoadBalancer when scoped."""
        return [{"Name": DIM_TARGET_GROUP, "Value": target_group}, *self.load_balancer_dimensions()]


# -----------------------------
# Key naming
# -----------------------------


def target_group_short_name(target_group: str) -> str:
    """
    Return the middle path segment of a target group identifier.

    ``targetgroup/tg-a/111`` -> ``tg-a``. Identifiers without a path separator
    are returned unchanged.
    """
    parts = str(target_group).split("/")
    if len(parts) < 2:
        return str(target_group)
    return parts[1]


def load_balancer_key(prefix: str, percentile: str) -> str:
    return f"{prefix}.{percentile}"


def target_group_key(prefix: str, target_group: str, percentile: str) -> str:
    return f"{prefix}.{target_group_short_name(target_group)}.{percentile}"


# -----------------------------
# Datapoints and snapshots
# -----------------------------


@dataclass(frozen=True)
class MetricPoint:
    """One (timestamp, percentile, value) triple from GetMetricStatistics."""
    timestamp: datetime
    percentile: str
    value: float


class MetricSnapshot(Mapping[str, float]):
    """
    Fully-qualified metric key -> float, built once per collection cycle.

    Iteration is in sorted key order so rendered output is stable regardless
    of the order target groups were queried in.
    """

    def __init__(self, values: Mapping[str, float] | None = None) -> None:
        self._values: dict[str, float] = {}
        for key, value in (values or {}).items():
            self.record(key, value)

    def record(self, key: str, value: Any) -> None:
        k = str(key or "").strip()
        if not k:
            raise ValueError("metric key must be a non-empty string")
        self._values[k] = float(value)

    def __getitem__(self, key: str) -> float:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def to_dict(self) -> dict[str, float]:
        return {k: self._values[k] for k in self}

    def __repr__(self) -> str:
        return f"MetricSnapshot({self.to_dict()!r})"


__all__ = [
    "DEFAULT_METRIC_KEY_PREFIX",
    "DIM_LOAD_BALANCER",
    "DIM_TARGET_GROUP",
    "NAMESPACE",
    "PERCENTILES",
    "RESPONSE_TIME_METRIC",
    "MetricPoint",
    "MetricSnapshot",
    "Scope",
    "TargetGroupSet",
    "load_balancer_key",
    "target_group_key",
    "target_group_short_name",
]
