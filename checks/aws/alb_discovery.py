"""checks/aws/alb_discovery.py

Target group discovery for an Application Load Balancer.

CloudWatch's metric catalog is the source of truth: every target group that
reports ``TargetResponseTime`` for the load balancer shows up in ListMetrics
with a ``TargetGroup`` dimension.

Notes
-----
- Only metrics with exactly two dimensions (TargetGroup + LoadBalancer) are
  kept. Other shapes (e.g. TargetGroup + LoadBalancer + AvailabilityZone)
  belong to another metric variant.
- Catalog order is preserved and duplicates are kept; a duplicated target
  group is simply queried twice by the collector.
- Read-only; any CloudWatch error surfaces as QueryError.
"""

from __future__ import annotations

from typing import Any

from checks.aws._common import AWS_CALL_EXCEPTIONS, get_logger, paginate_items, query_error
from contracts.alb_metrics import (
    DIM_LOAD_BALANCER,
    DIM_TARGET_GROUP,
    NAMESPACE,
    RESPONSE_TIME_METRIC,
    Scope,
    TargetGroupSet,
)

_LOGGER = get_logger("alb_discovery")

_EXPECTED_DIMENSIONS = 2


def list_metrics_params(scope: Scope) -> dict[str, Any]:
    """ListMetrics request for the scope's target groups."""
    dimensions: list[dict[str, str]] = [{"Name": DIM_TARGET_GROUP}]
    if scope.load_balancer is not None:
        dimensions.append({"Name": DIM_LOAD_BALANCER, "Value": scope.load_balancer})
    return {
        "Namespace": NAMESPACE,
        "MetricName": RESPONSE_TIME_METRIC,
        "Dimensions": dimensions,
    }


def _target_group_of(metric: dict[str, Any]) -> str | None:
    dims = metric.get("Dimensions") or []
    if len(dims) != _EXPECTED_DIMENSIONS:
        return None
    for dim in dims:
        if not isinstance(dim, dict) or dim.get("Name") != DIM_TARGET_GROUP:
            continue
        value = dim.get("Value")
        if value:
            return str(value)
    return None


def discover(scope: Scope, cloudwatch: Any) -> TargetGroupSet:
    """Return the target groups reporting response time for ``scope``.

    Raises QueryError on any CloudWatch failure; no partial list is returned.
    """
    params = list_metrics_params(scope)
    found: list[str] = []
    skipped = 0

    try:
        for metric in paginate_items(cloudwatch, "list_metrics", "Metrics", params=params):
            tg = _target_group_of(metric)
            if tg is None:
                skipped += 1
                continue
            found.append(tg)
    except AWS_CALL_EXCEPTIONS as exc:
        raise query_error("ListMetrics", exc) from exc

    _LOGGER.info(
        "discovered %d target group(s) for %s (%d metric(s) skipped on dimension shape)",
        len(found),
        scope.load_balancer or "all load balancers",
        skipped,
    )
    return tuple(found)
