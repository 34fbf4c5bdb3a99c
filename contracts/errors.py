"""
contracts/errors.py

Error kinds raised by discovery and collection.

Every error aborts the current collection cycle. Nothing is retried here;
retry-on-schedule belongs to whoever invokes the cycle (the agent, or the
runner loop).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class AlbMetricsError(RuntimeError):
    """Base class for all plugin errors."""


class QueryError(AlbMetricsError):
    """
    A CloudWatch call failed (transport, auth, throttling, malformed request).

    The botocore exception is chained as ``__cause__``; ``operation`` and
    ``code`` are copied from it so callers do not have to dig.
    """

    def __init__(self, message: str, *, operation: str, code: str = "") -> None:
        super().__init__(message)
        self.operation = operation
        self.code = code


class NoDataError(AlbMetricsError):
    """A well-formed query returned no usable datapoint."""

    def __init__(
        self,
        message: str,
        *,
        dimensions: Sequence[Mapping[str, str]] = (),
        statistic: str = "",
    ) -> None:
        super().__init__(message)
        self.dimensions = tuple(dict(d) for d in dimensions)
        self.statistic = statistic


class CollectionCancelled(AlbMetricsError):
    """The stop event was set while a cycle was in flight."""


__all__ = [
    "AlbMetricsError",
    "CollectionCancelled",
    "NoDataError",
    "QueryError",
]
