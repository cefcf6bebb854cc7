# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers build a RestoreConfig from well-known environment variables
and resolve identity profiles to the role ARN used for the initial
credential assumption.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Mapping

from s3rr.config import DEFAULT_LEDGER_PATH, DEFAULT_TTL_DAYS, RestoreConfig
from s3rr.errors import (
    explain_invalid_integer_env,
    explain_invalid_ttl,
    explain_missing_bucket_paths,
    explain_missing_region,
    explain_unknown_profile,
    profile_env_name,
)
from s3rr.exceptions import ConfigurationError


def parse_bucket_paths(value: str | None) -> List[str]:
    """
    Split a comma-separated path list.

    Entries are stripped of surrounding whitespace and empty entries are
    dropped. Duplicates are kept.
    """
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def parse_ttl_days(value: str | None) -> int:
    if value is None or value == "":
        return DEFAULT_TTL_DAYS
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_ttl(value)) from exc
    if days < 0:
        raise ConfigurationError(explain_invalid_ttl(value))
    return days


def _parse_positive_int(name: str, value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_integer_env(name, value)) from exc
    if parsed < 1:
        raise ConfigurationError(explain_invalid_integer_env(name, value))
    return parsed


def resolve_role_arn(
    profile: str | None,
    role_arn: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """
    Resolve the role ARN for the initial credential assumption.

    An explicit role ARN wins. Otherwise a profile is looked up in
    S3RR_ROLE_ARN_<PROFILE>. Without either, S3RR_ROLE_ARN is used, and
    None means "use the default credential chain".

    Raises:
        ConfigurationError: If a profile is given but has no role ARN
    """
    env = os.environ if environ is None else environ

    if role_arn:
        return role_arn

    if profile:
        arn = env.get(profile_env_name(profile))
        if not arn:
            raise ConfigurationError(
                explain_unknown_profile(profile),
                details={"profile": profile},
            )
        return arn

    return env.get("S3RR_ROLE_ARN") or None


def create_config_from_env(environ: Mapping[str, str] | None = None) -> RestoreConfig:
    """
    Create a RestoreConfig from environment variables.

    Required:
        - S3RR_BUCKET_PATHS: Comma-separated bucket/prefix list
        - AWS_REGION: AWS region

    Optional environment variables:
        - S3RR_TTL_DAYS: Non-negative integer (default: 30)
        - S3RR_PROFILE: Identity profile used to look up the role ARN
        - S3RR_ROLE_ARN: Role ARN when no profile is given
        - S3RR_LEDGER_PATH: SQLite ledger path (default: ./s3_restore_requests.db)
        - S3RR_MAX_CONCURRENT_OPS: Size of the concurrency gate (default: 5)
        - S3RR_CALL_TIMEOUT: Seconds allowed per object store call (default: 300)
        - SLACK_CHANNEL_ID: Slack channel for status messages
    """
    env = os.environ if environ is None else environ

    bucket_paths = parse_bucket_paths(env.get("S3RR_BUCKET_PATHS"))
    if not bucket_paths:
        raise ConfigurationError(explain_missing_bucket_paths())

    region = env.get("AWS_REGION")
    if not region:
        raise ConfigurationError(explain_missing_region())

    profile = env.get("S3RR_PROFILE") or None
    ledger_env = env.get("S3RR_LEDGER_PATH")

    call_timeout: float | None = 300.0
    if env.get("S3RR_CALL_TIMEOUT"):
        call_timeout = float(
            _parse_positive_int("S3RR_CALL_TIMEOUT", env.get("S3RR_CALL_TIMEOUT"), 300)
        )

    return RestoreConfig(
        bucket_paths=bucket_paths,
        region=region,
        ttl_days=parse_ttl_days(env.get("S3RR_TTL_DAYS")),
        role_arn=resolve_role_arn(profile, environ=env),
        profile=profile,
        ledger_path=Path(ledger_env) if ledger_env else DEFAULT_LEDGER_PATH,
        max_concurrent_ops=_parse_positive_int(
            "S3RR_MAX_CONCURRENT_OPS", env.get("S3RR_MAX_CONCURRENT_OPS"), 5
        ),
        call_timeout_seconds=call_timeout,
        slack_channel=env.get("SLACK_CHANNEL_ID") or None,
    )
