"""Tests for the JSON formatter and structured event logging."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable

import pytest

from infra.config import clear_settings_cache
from infra.logging_config import (
    JsonFormatter,
    StructuredLogger,
    TextFormatter,
    clear_cycle_context,
    set_cycle_context,
    setup_logging,
)


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def _capture(name: str, emit: Callable[[StructuredLogger], None]) -> logging.LogRecord:
    handler = _ListHandler()
    base = logging.getLogger(name)
    base.addHandler(handler)
    base.setLevel(logging.INFO)
    try:
        emit(StructuredLogger(name))
    finally:
        base.removeHandler(handler)
    return handler.records[0]


def test_structured_logger_json_includes_event_extras_and_cycle_context() -> None:
    clear_cycle_context()
    set_cycle_context(cycle=7)
    set_cycle_context(load_balancer="app/my-lb/abc123")
    record = _capture("tests.structured", lambda log: log.info("alb_collection_completed", metrics=15))

    payload = json.loads(JsonFormatter().format(record))
    clear_cycle_context()

    assert payload["event"] == "alb_collection_completed"
    assert payload["metrics"] == 15
    assert payload["cycle"] == 7
    assert payload["load_balancer"] == "app/my-lb/abc123"
    assert payload["level"] == "INFO"
    assert payload["message"] == "alb_collection_completed metrics=15"


def test_cleared_cycle_context_is_not_logged() -> None:
    set_cycle_context(cycle=1)
    clear_cycle_context()
    record = _capture("tests.cleared", lambda log: log.warning("alb_state_write_failed", path="/tmp/x"))

    payload = json.loads(JsonFormatter().format(record))

    assert "cycle" not in payload
    assert payload["path"] == "/tmp/x"
    assert payload["level"] == "WARNING"


def test_setup_logging_json_handler_on_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALB_LOG_JSON", "1")
    monkeypatch.setenv("ALB_LOG_LEVEL", "debug")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    clear_settings_cache()
    try:
        setup_logging(override_root_handlers=True)

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)
        assert handler.stream is sys.stderr

        setup_logging(json_logs=False, override_root_handlers=True)
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        clear_settings_cache()
