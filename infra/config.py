"""Centralized plugin configuration with schema validation.

This module is intentionally compatibility-first:
- Supports flat environment names (for example ``AWS_REGION``).
- Supports nested names (for example ``AWS__REGION``) for consistency.
- Optionally reads a local ``.env`` file before process env values.

CLI flags parsed by :mod:`runner` override whatever is loaded here.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_PREFIX_RE = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*$")


class AWSConfig(BaseModel):
    """AWS client defaults used by the service factory."""

    model_config = ConfigDict(frozen=True)

    region: str = Field(default="")
    access_key_id: str = Field(default="", repr=False)
    secret_access_key: str = Field(default="", repr=False)
    max_retries: int = Field(default=10, ge=1, le=25)
    timeout: int = Field(default=60, ge=1, le=300)
    connect_timeout: int = Field(default=5, ge=1, le=60)

    @field_validator("region", "access_key_id", "secret_access_key", mode="before")
    @classmethod
    def _normalize_text(cls, value: object) -> str:
        return str(value or "").strip()


class PluginConfig(BaseModel):
    """What to collect and how to name it."""

    model_config = ConfigDict(frozen=True)

    lb_name: str | None = Field(default=None, description="LoadBalancer dimension value, app/<name>/<hash>")
    metric_key_prefix: str = Field(default="alb")
    tempfile: str | None = Field(default=None)
    interval_seconds: int = Field(default=60, ge=1, le=3600)
    discovery_refresh_seconds: int = Field(default=600, ge=0)

    @field_validator("lb_name", "tempfile", mode="before")
    @classmethod
    def _normalize_optional_text(cls, value: object) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("metric_key_prefix", mode="before")
    @classmethod
    def _validate_prefix(cls, value: object) -> str:
        text = str(value or "").strip().strip(".")
        if not text:
            return "alb"
        if not _PREFIX_RE.match(text):
            raise ValueError(
                "plugin.metric_key_prefix must be dot-separated segments of [A-Za-z0-9_-]"
            )
        return text


class LoggingSettings(BaseModel):
    """Repository-wide logging settings."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    override_root_handlers: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        text = str(value or "").strip().upper()
        if text in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return text
        return "INFO"


class Settings(BaseModel):
    """Top-level settings model."""

    model_config = ConfigDict(frozen=True)

    aws: AWSConfig = Field(default_factory=AWSConfig)
    plugin: PluginConfig = Field(default_factory=PluginConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_env(
        cls,
        *,
        env: Mapping[str, str] | None = None,
        env_file: str = ".env",
    ) -> Settings:
        """Build settings from `.env` then environment variables."""
        runtime_env = os.environ if env is None else env
        merged_env = _merge_env(_load_dotenv(Path(env_file)), runtime_env)
        payload = _build_payload(merged_env)
        return cls.model_validate(payload)


def _load_dotenv(path: Path) -> dict[str, str]:
    """Parse a minimal `.env` file format."""
    if not path.exists() or not path.is_file():
        return {}

    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        key_clean = key.strip()
        value = raw_value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        if key_clean:
            values[key_clean] = value
    return values


def _merge_env(dotenv_values: Mapping[str, str], runtime_env: Mapping[str, str]) -> dict[str, str]:
    """Return env map where process env overrides `.env` values."""
    merged = {str(k): str(v) for k, v in dotenv_values.items()}
    for key, value in runtime_env.items():
        merged[str(key)] = str(value)
    return merged


def _first_non_empty(env: Mapping[str, str], *keys: str) -> str | None:
    """Return the first non-empty value for the provided keys."""
    for key in keys:
        value = str(env.get(key, "")).strip()
        if value:
            return value
    return None


def _build_payload(env: Mapping[str, str]) -> dict[str, object]:
    """Build nested settings payload from env values."""
    aws = {
        "region": _first_non_empty(env, "AWS__REGION", "AWS_REGION", "AWS_DEFAULT_REGION"),
        "access_key_id": _first_non_empty(env, "AWS__ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID"),
        "secret_access_key": _first_non_empty(env, "AWS__SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"),
        "max_retries": _first_non_empty(env, "AWS__MAX_RETRIES", "AWS_MAX_RETRIES"),
        "timeout": _first_non_empty(env, "AWS__TIMEOUT", "AWS_TIMEOUT"),
        "connect_timeout": _first_non_empty(env, "AWS__CONNECT_TIMEOUT", "AWS_CONNECT_TIMEOUT"),
    }
    plugin = {
        "lb_name": _first_non_empty(env, "PLUGIN__LB_NAME", "ALB_LB_NAME"),
        "metric_key_prefix": _first_non_empty(env, "PLUGIN__METRIC_KEY_PREFIX", "ALB_METRIC_KEY_PREFIX"),
        "tempfile": _first_non_empty(env, "PLUGIN__TEMPFILE", "ALB_TEMPFILE"),
        "interval_seconds": _first_non_empty(env, "PLUGIN__INTERVAL_SECONDS", "ALB_INTERVAL_SECONDS"),
        "discovery_refresh_seconds": _first_non_empty(
            env, "PLUGIN__DISCOVERY_REFRESH_SECONDS", "ALB_DISCOVERY_REFRESH_SECONDS"
        ),
    }
    logging_settings = {
        "level": _first_non_empty(env, "LOGGING__LEVEL", "ALB_LOG_LEVEL"),
        "json_logs": _first_non_empty(env, "LOGGING__JSON_LOGS", "ALB_LOG_JSON"),
        "override_root_handlers": _first_non_empty(
            env, "LOGGING__OVERRIDE_ROOT_HANDLERS", "ALB_LOG_OVERRIDE"
        ),
    }
    return {
        "aws": {k: v for k, v in aws.items() if v is not None},
        "plugin": {k: v for k, v in plugin.items() if v is not None},
        "logging": {k: v for k, v in logging_settings.items() if v is not None},
    }


_SETTINGS_LOCK = Lock()
_SETTINGS_CACHE: Settings | None = None


def get_settings(*, reload: bool = False) -> Settings:
    """Return cached settings, optionally forcing reload from env."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        if reload or _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = Settings.from_env()
        return _SETTINGS_CACHE


def clear_settings_cache() -> None:
    """Clear in-process settings cache."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None


__all__ = [
    "AWSConfig",
    "LoggingSettings",
    "PluginConfig",
    "Settings",
    "get_settings",
    "clear_settings_cache",
    "ValidationError",
]
