"""Centralized logging configuration.

The plugin supports both human-friendly text logs and structured JSON logs.
Logs always go to stderr: stdout belongs to the metric lines read by the
agent, and a stray log line there would be parsed as a metric.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from infra.config import get_settings

# Fields of the running collection cycle, merged into JSON log entries
cycle_ctx: ContextVar[dict[str, Any] | None] = ContextVar("cycle_ctx", default=None)


def set_cycle_context(**kwargs: Any) -> None:
    """Add fields (cycle number, load balancer) to every later log entry."""
    cycle_ctx.set({**(cycle_ctx.get() or {}), **kwargs})


def clear_cycle_context() -> None:
    """Drop the cycle fields (at the start and end of every cycle)."""
    cycle_ctx.set({})


def _utc_iso8601() -> str:
    # Example: 2026-01-24T18:03:12.123Z
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_STANDARD_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
    "message", "asctime",
})


class JsonFormatter(logging.Formatter):
    """
    Safe JSON formatter:
      - Always outputs valid JSON (message escaped via json.dumps)
      - Includes `extra={...}` fields and the cycle context
      - Includes exception info when present
    """

    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": _utc_iso8601(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
            "process": record.process,
        }

        for k, v in self._extract_extras(record).items():
            if k not in base:
                base[k] = v

        if record.exc_info:
            base["exception"] = self.formatException(record.exc_info)

        ctx = cycle_ctx.get()
        if ctx:
            for k, v in ctx.items():
                if k not in base:
                    base[k] = v

        return json.dumps(base, ensure_ascii=False, default=str)

    @staticmethod
    def _extract_extras(record: logging.LogRecord) -> dict[str, Any]:
        # Anything not in standard LogRecord attributes is "extra"
        return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_RECORD_ATTRS}


class TextFormatter(logging.Formatter):
    """
    Human-friendly logs, but UTC timestamps.
    """
    converter = time.gmtime  # UTC

    def __init__(self) -> None:
        super().__init__("%(asctime)sZ | %(levelname)s | %(name)s | %(message)s")


class StructuredLogger:
    """
    Event-style logger with automatic context injection.

    Usage:
        logger = StructuredLogger(__name__)
        set_cycle_context(cycle=3, load_balancer="app/my-lb/abc123")
        logger.info("alb_collection_completed", metrics=15)
        # JSON output: {"event": "alb_collection_completed", "cycle": 3,
        #               "load_balancer": "app/my-lb/abc123", "metrics": 15, ...}
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        extra = {
            "event": event,
            **kwargs,
        }
        if kwargs:
            details = " ".join(f"{k}={v}" for k, v in kwargs.items())
            message = f"{event} {details}"
        else:
            message = event
        self._logger.log(level, message, extra=extra)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, event, **kwargs)


def setup_logging(
    *,
    level: str | None = None,
    json_logs: bool | None = None,
    override_root_handlers: bool | None = None,
) -> None:
    """
    Central logging setup for the plugin.

    Explicit arguments win over settings. Env vars:
      - ALB_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default INFO)
      - ALB_LOG_JSON:  1/0 (default 0)
      - ALB_LOG_OVERRIDE: 1/0 (default 0)
         If 1, replaces any pre-configured root handlers.
         If 0, only configures logging if root has no handlers.
    """
    config = get_settings(reload=True).logging
    level_name = (level or config.level).upper()
    use_json = config.json_logs if json_logs is None else json_logs
    override = config.override_root_handlers if override_root_handlers is None else override_root_handlers

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if use_json else TextFormatter())

    if override:
        for h in list(root.handlers):
            root.removeHandler(h)
        root.addHandler(handler)
    elif not root.handlers:
        root.addHandler(handler)

    # botocore logs every retry at DEBUG
    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
