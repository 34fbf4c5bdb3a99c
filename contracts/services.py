"""
contracts/services.py

Services container + region-aware factory (DI-friendly).

Goals:
- Discovery and collection never create clients; they receive one.
- Static credentials from flags/env are applied to the session once.
- Keep it lightweight so tests can pass a fake client straight in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from contracts.alb_metrics import Scope


@dataclass(frozen=True)
class Services:
    """
    Bag of SDK clients used by one run.

    `region` is informational and ends up in logs.
    """
    cloudwatch: Any
    region: str = ""


def make_session(scope: Scope) -> boto3.Session:
    """
    Build a boto3 session for the scope.

    Static keys are only used when both halves are present; otherwise boto3's
    default credential chain applies (env, shared config, instance profile).
    """
    kwargs: dict[str, Any] = {}
    if scope.has_static_credentials:
        kwargs["aws_access_key_id"] = scope.access_key_id
        kwargs["aws_secret_access_key"] = scope.secret_access_key
    return boto3.Session(**kwargs)


class ServicesFactory:
    """
    Creates and caches AWS SDK clients per region.

    Usage:
      factory = ServicesFactory(session=make_session(scope), sdk_config=SDK_CONFIG)
      svcs = factory.for_region("eu-west-3")
      svcs2 = factory.for_region("eu-west-3")  # cached, same object

    An empty region lets boto3 resolve it from the session's own config chain.
    """

    def __init__(self, *, session: boto3.Session, sdk_config: Config | None = None) -> None:
        self._session = session
        self._sdk_config = sdk_config
        self._by_region: dict[str, Services] = {}

    def _client(self, service: str, *, region: str | None) -> Any:
        kwargs: dict[str, Any] = {}
        if region:
            kwargs["region_name"] = region
        if self._sdk_config is not None:
            kwargs["config"] = self._sdk_config
        return self._session.client(service, **kwargs)

    def for_region(self, region: str | None) -> Services:
        """
        Return cached Services for a given region, creating it if needed.
        """
        reg = str(region or "").strip()

        cached = self._by_region.get(reg)
        if cached is not None:
            return cached

        client = self._client("cloudwatch", region=reg or None)
        resolved = reg or str(getattr(getattr(client, "meta", None), "region_name", "") or "")
        svcs = Services(cloudwatch=client, region=resolved)
        self._by_region[reg] = svcs
        return svcs

    def clear_cache(self) -> None:
        """
        Clears per-region Services cache. (Mostly useful for tests.)
        """
        self._by_region.clear()
