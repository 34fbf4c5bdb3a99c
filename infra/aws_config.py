"""AWS SDK configuration for the plugin.

The runner imports from this module to keep AWS/client tuning and region
resolution in one place.
"""

from __future__ import annotations

import logging

from botocore.config import Config
from botocore.utils import InstanceMetadataRegionFetcher

from infra.config import AWSConfig
from version import ENGINE_NAME, ENGINE_VERSION

_LOGGER = logging.getLogger(__name__)


def build_sdk_config(aws_cfg: AWSConfig) -> Config:
    """botocore Config with retries/timeouts from settings."""
    return Config(
        retries={"max_attempts": int(aws_cfg.max_retries), "mode": "adaptive"},
        user_agent_extra=f"{ENGINE_NAME}/{ENGINE_VERSION}",
        connect_timeout=int(aws_cfg.connect_timeout),
        read_timeout=int(aws_cfg.timeout),
    )


def region_from_instance_metadata(*, timeout: float = 1.0, num_attempts: int = 1) -> str:
    """Region of the EC2 instance we run on, or "" when IMDS is unreachable."""
    fetcher = InstanceMetadataRegionFetcher(timeout=timeout, num_attempts=num_attempts)
    return str(fetcher.retrieve_region() or "")


def resolve_region(*candidates: str | None) -> str:
    """
    First non-empty candidate, else the instance metadata region.

    Returns "" when nothing is known; boto3 then falls back to its own
    config chain (AWS_DEFAULT_REGION, ~/.aws/config).
    """
    for candidate in candidates:
        text = str(candidate or "").strip()
        if text:
            return text

    region = region_from_instance_metadata()
    if region:
        _LOGGER.debug("region resolved from instance metadata: %s", region)
    return region
