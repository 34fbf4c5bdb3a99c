"""Contracts shared by discovery, collection and emission.

The contracts package defines:
- the immutable run Scope and the MetricSnapshot accumulator
- the static graph definitions published to the agent
- the error kinds that abort a collection cycle
- the Services container and its boto3 factory

Main exports:
- Scope, MetricPoint, MetricSnapshot, TargetGroupSet
- GraphSpec, GraphMetric, graph_definitions
- QueryError, NoDataError, CollectionCancelled
- Services, ServicesFactory
"""

from contracts import alb_metrics
from contracts import errors
from contracts import graph_definitions as graphs_module
from contracts import services as services_module

# Explicit re-exports to satisfy ruff F401
__all__ = [
    "AlbMetricsError",
    "CollectionCancelled",
    "GraphMetric",
    "GraphSpec",
    "MetricPoint",
    "MetricSnapshot",
    "NoDataError",
    "QueryError",
    "Scope",
    "Services",
    "ServicesFactory",
    "TargetGroupSet",
    "graph_definitions",
]

# Re-export for convenience
MetricPoint = alb_metrics.MetricPoint
MetricSnapshot = alb_metrics.MetricSnapshot
Scope = alb_metrics.Scope
TargetGroupSet = alb_metrics.TargetGroupSet

GraphMetric = graphs_module.GraphMetric
GraphSpec = graphs_module.GraphSpec
graph_definitions = graphs_module.graph_definitions

AlbMetricsError = errors.AlbMetricsError
CollectionCancelled = errors.CollectionCancelled
NoDataError = errors.NoDataError
QueryError = errors.QueryError

Services = services_module.Services
ServicesFactory = services_module.ServicesFactory
