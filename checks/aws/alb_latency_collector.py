"""checks/aws/alb_latency_collector.py

Latest response-time percentiles for an ALB and each of its target groups.

Per cycle
---------
1) One GetMetricStatistics call per target group
   (TargetGroup dimension, plus LoadBalancer when scoped)
   -> ``<prefix>.<target-group-short-name>.<pct>``
2) One aggregate call without the TargetGroup dimension
   (LoadBalancer only when scoped, no dimension at all otherwise)
   -> ``<prefix>.<pct>``

Every call asks for p99/p95/p90/p50/p10 over the trailing 3 minutes at a
60 second period. Three periods are requested so reporting delay still leaves
at least one datapoint; only the latest one is kept.

Notes
-----
- A single ``now`` is captured per cycle and used for all N+1 windows and
  for the "not later than now" cut-off.
- The first failing call aborts the whole cycle. Values are accumulated into
  a private snapshot that is only handed back on success.
- Timestamp ties are resolved by API order (last one wins). CloudWatch does
  not guarantee datapoint order, so a true tie is nondeterministic.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from checks.aws._common import AWS_CALL_EXCEPTIONS, get_logger, now_utc, query_error, safe_float, utc
from contracts.alb_metrics import (
    NAMESPACE,
    PERCENTILES,
    RESPONSE_TIME_METRIC,
    MetricPoint,
    MetricSnapshot,
    Scope,
    load_balancer_key,
    target_group_key,
)
from contracts.errors import CollectionCancelled, NoDataError

_LOGGER = get_logger("alb_latency_collector")


# -----------------------------
# Config
# -----------------------------


@dataclass(frozen=True)
class CollectorConfig:
    """Query window knobs for :func:`collect`."""

    window: timedelta = timedelta(minutes=3)
    period_seconds: int = 60
    percentiles: tuple[str, ...] = PERCENTILES


DEFAULT_CONFIG = CollectorConfig()


# -----------------------------
# Datapoints
# -----------------------------


def metric_points(datapoints: Iterable[Mapping[str, Any]]) -> list[MetricPoint]:
    """Flatten CloudWatch datapoints into MetricPoints, keeping API order.

    A datapoint without a timestamp, or a percentile without a numeric value,
    contributes nothing.
    """
    out: list[MetricPoint] = []
    for dp in datapoints:
        ts = utc(dp.get("Timestamp"))
        if ts is None:
            continue
        ext = dp.get("ExtendedStatistics") or {}
        for label, raw in ext.items():
            value = safe_float(raw)
            if value is None:
                continue
            out.append(MetricPoint(timestamp=ts, percentile=str(label), value=value))
    return out


def latest_points(
    points: Iterable[MetricPoint],
    *,
    now: datetime,
    percentiles: Sequence[str] = PERCENTILES,
) -> dict[str, MetricPoint]:
    """Max-by-timestamp reduction, independently per percentile label.

    Points later than ``now`` are ignored. On equal timestamps the point seen
    last wins. Labels with no eligible point are absent from the result.
    """
    wanted = set(percentiles)
    cutoff = utc(now)
    latest: dict[str, MetricPoint] = {}
    for point in points:
        if point.percentile not in wanted or point.timestamp > cutoff:
            continue
        current = latest.get(point.percentile)
        if current is None or point.timestamp >= current.timestamp:
            latest[point.percentile] = point
    return latest


# -----------------------------
# Queries
# -----------------------------


def statistics_params(
    dimensions: Sequence[Mapping[str, str]],
    *,
    now: datetime,
    config: CollectorConfig = DEFAULT_CONFIG,
) -> dict[str, Any]:
    """GetMetricStatistics request for one dimension set."""
    return {
        "Namespace": NAMESPACE,
        "MetricName": RESPONSE_TIME_METRIC,
        "Dimensions": [dict(d) for d in dimensions],
        "StartTime": now - config.window,
        "EndTime": now,
        "Period": int(config.period_seconds),
        "ExtendedStatistics": list(config.percentiles),
    }


def last_percentiles(
    cloudwatch: Any,
    dimensions: Sequence[Mapping[str, str]],
    *,
    now: datetime,
    config: CollectorConfig = DEFAULT_CONFIG,
) -> dict[str, float]:
    """Latest value of each configured percentile for one dimension set.

    Raises QueryError when the call fails and NoDataError when no usable
    datapoint came back (for any percentile).
    """
    params = statistics_params(dimensions, now=now, config=config)
    try:
        resp = cloudwatch.get_metric_statistics(**params)
    except AWS_CALL_EXCEPTIONS as exc:
        raise query_error("GetMetricStatistics", exc) from exc

    datapoints = resp.get("Datapoints") or []
    if not datapoints:
        raise NoDataError(
            f"fetched no datapoints for {_describe(dimensions)}",
            dimensions=dimensions,
        )

    latest = latest_points(metric_points(datapoints), now=now, percentiles=config.percentiles)
    out: dict[str, float] = {}
    for pct in config.percentiles:
        point = latest.get(pct)
        if point is None:
            raise NoDataError(
                f"no {pct} datapoint at or before {now.isoformat()} for {_describe(dimensions)}",
                dimensions=dimensions,
                statistic=pct,
            )
        out[pct] = point.value
    return out


def _describe(dimensions: Sequence[Mapping[str, str]]) -> str:
    if not dimensions:
        return "all load balancers"
    return ", ".join(f"{d.get('Name')}={d.get('Value')}" for d in dimensions)


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise CollectionCancelled("collection cycle cancelled")


# -----------------------------
# Cycle
# -----------------------------


def collect(
    scope: Scope,
    target_groups: Sequence[str],
    cloudwatch: Any,
    *,
    now: datetime | None = None,
    cancel: threading.Event | None = None,
    config: CollectorConfig = DEFAULT_CONFIG,
) -> MetricSnapshot:
    """Run one collection cycle (N target group queries + 1 aggregate query).

    Raises QueryError, NoDataError or CollectionCancelled; on any of them no
    snapshot is returned.
    """
    cycle_now = utc(now) or now_utc()
    snapshot = MetricSnapshot()

    for tg in target_groups:
        _check_cancelled(cancel)
        values = last_percentiles(
            cloudwatch, scope.target_group_dimensions(tg), now=cycle_now, config=config
        )
        for pct, value in values.items():
            snapshot.record(target_group_key(scope.prefix, tg, pct), value)

    _check_cancelled(cancel)
    values = last_percentiles(cloudwatch, scope.load_balancer_dimensions(), now=cycle_now, config=config)
    for pct, value in values.items():
        snapshot.record(load_balancer_key(scope.prefix, pct), value)

    _LOGGER.debug(
        "collected %d metric(s) from %d call(s)", len(snapshot), len(target_groups) + 1
    )
    return snapshot
