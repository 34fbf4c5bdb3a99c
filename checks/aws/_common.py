"""Shared helpers for the CloudWatch-backed checks.

Discovery and collection repeat a few patterns:
- normalize timestamps to UTC
- walk every page of a boto3 paginator
- turn botocore exceptions into the plugin's QueryError

Keeping these helpers in one place keeps error surfacing consistent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from contracts.errors import QueryError

AWS_CALL_EXCEPTIONS: Tuple[type[Exception], ...] = (ClientError, BotoCoreError)


def get_logger(name: str) -> logging.Logger:
    """Module logger under the ``checks.aws`` namespace."""
    return logging.getLogger(f"checks.aws.{name}")


def utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` converted to timezone-aware UTC (or None)."""

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def now_utc() -> datetime:
    """Return the current UTC timestamp."""

    return datetime.now(timezone.utc)


def safe_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Best-effort float conversion (``default`` on None/invalid)."""

    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def client_error_code(exc: BaseException) -> str:
    """AWS error code of a ClientError ("" for anything else)."""
    if not isinstance(exc, ClientError):
        return ""
    try:
        return str(exc.response.get("Error", {}).get("Code") or "")
    except (AttributeError, TypeError, ValueError):
        return ""


def query_error(operation: str, exc: BaseException) -> QueryError:
    """Wrap a botocore exception; callers raise it ``from exc``."""
    code = client_error_code(exc)
    label = f" ({code})" if code else ""
    return QueryError(f"cloudwatch:{operation} failed{label}: {exc}", operation=operation, code=code)


def paginate_items(
    client: Any,
    operation: str,
    result_key: str,
    *,
    params: Optional[Dict[str, Any]] = None,
) -> Iterator[Dict[str, Any]]:
    """Yield dict items from every page of the boto3 paginator for ``operation``.

    Errors are never swallowed: a failing page surfaces to the caller, which
    decides how to wrap it.
    """
    paginator = client.get_paginator(operation)
    for page in paginator.paginate(**dict(params or {})):
        for item in page.get(result_key, []) or []:
            if isinstance(item, dict):
                yield item
