# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that the
coordinator and every concurrent path restorer see the same settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import re


class StorageTier(str, Enum):
    """S3 storage classes the engine knows about."""

    STANDARD = "STANDARD"
    REDUCED_REDUNDANCY = "REDUCED_REDUNDANCY"
    STANDARD_IA = "STANDARD_IA"
    ONEZONE_IA = "ONEZONE_IA"
    INTELLIGENT_TIERING = "INTELLIGENT_TIERING"
    GLACIER = "GLACIER"
    GLACIER_IR = "GLACIER_IR"
    DEEP_ARCHIVE = "DEEP_ARCHIVE"


# Migration source and destination
DEPRECATED_TIER = StorageTier.REDUCED_REDUNDANCY.value
TARGET_TIER = StorageTier.STANDARD.value

DEFAULT_LEDGER_PATH = Path("./s3_restore_requests.db")
DEFAULT_TTL_DAYS = 30
DEFAULT_MAX_CONCURRENT_OPS = 5
DEFAULT_THROTTLE_SECONDS = 2.0
DEFAULT_CREDENTIAL_REFRESH_SECONDS = 30 * 60

_ROLE_ARN_PATTERN = re.compile(r"^arn:aws[a-zA-Z-]*:iam::\d{12}:role/[\w+=,.@/-]+$")
_REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")


def _validate_region(region: str) -> bool:
    """Validate an AWS region identifier such as 'eu-west-1'."""
    return bool(region) and bool(_REGION_PATTERN.match(region))


def _validate_role_arn(role_arn: str) -> bool:
    """Validate an IAM role ARN."""
    return bool(_ROLE_ARN_PATTERN.match(role_arn))


@dataclass(frozen=True)
class RestoreConfig:
    """
    Immutable configuration for a restore run.

    Bucket paths are kept exactly as given (order and duplicates included);
    malformed entries are not rejected here because the engine reports them
    as failed paths instead of aborting the whole request.
    """

    # Paths of the form bucket/prefix
    bucket_paths: List[str] = field(default_factory=list)

    # AWS region
    region: str = "us-east-1"

    # Advisory TTL (days) for restored objects; recorded, not enforced
    ttl_days: int = DEFAULT_TTL_DAYS

    # Role assumed for object store access (None = default credential chain)
    role_arn: str | None = None

    # Identity profile the role ARN was looked up from (informational)
    profile: str | None = None

    # SQLite ledger location
    ledger_path: Path = field(default_factory=lambda: DEFAULT_LEDGER_PATH)

    # Size of the concurrency gate
    max_concurrent_ops: int = DEFAULT_MAX_CONCURRENT_OPS

    # Delay after each successfully restored object
    throttle_seconds: float = DEFAULT_THROTTLE_SECONDS

    # Credential refresh interval
    credential_refresh_seconds: float = DEFAULT_CREDENTIAL_REFRESH_SECONDS

    # Requested lifetime of assumed credentials
    credential_duration_seconds: int = 3600

    # Upper bound for a single object store call (None = unbounded)
    call_timeout_seconds: float | None = 300.0

    # Page size for object listings
    list_batch_size: int = 1000

    deprecated_tier: str = DEPRECATED_TIER
    target_tier: str = TARGET_TIER

    # Slack channel for status messages (None = notifications disabled)
    slack_channel: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.bucket_paths:
            errors.append("bucket_paths must contain at least one path")

        if not _validate_region(self.region):
            errors.append(f"Invalid region: {self.region!r}")

        if self.ttl_days < 0:
            errors.append(f"ttl_days must be >= 0, got {self.ttl_days}")

        if self.role_arn is not None and not _validate_role_arn(self.role_arn):
            errors.append(f"Invalid role_arn: {self.role_arn!r}")

        if self.max_concurrent_ops < 1:
            errors.append(f"max_concurrent_ops must be >= 1, got {self.max_concurrent_ops}")

        if self.throttle_seconds < 0:
            errors.append(f"throttle_seconds must be >= 0, got {self.throttle_seconds}")

        if self.credential_refresh_seconds <= 0:
            errors.append(
                f"credential_refresh_seconds must be > 0, got {self.credential_refresh_seconds}"
            )

        # STS accepts 15 minutes to 12 hours
        if not 900 <= self.credential_duration_seconds <= 43200:
            errors.append(
                "credential_duration_seconds must be between 900 and 43200, "
                f"got {self.credential_duration_seconds}"
            )

        if self.call_timeout_seconds is not None and self.call_timeout_seconds <= 0:
            errors.append(
                f"call_timeout_seconds must be > 0 or None, got {self.call_timeout_seconds}"
            )

        if not 1 <= self.list_batch_size <= 1000:
            errors.append(f"list_batch_size must be between 1 and 1000, got {self.list_batch_size}")

        if self.deprecated_tier == self.target_tier:
            errors.append("deprecated_tier and target_tier must differ")

        if errors:
            from s3rr.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "RestoreConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return RestoreConfig(**current)
