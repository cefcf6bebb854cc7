# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Configuration and environment loading tests.
"""

from pathlib import Path

import pytest

from s3rr.config import DEFAULT_LEDGER_PATH, RestoreConfig
from s3rr.env import (
    create_config_from_env,
    parse_bucket_paths,
    parse_ttl_days,
    resolve_role_arn,
)
from s3rr.errors import profile_env_name
from s3rr.exceptions import ConfigurationError

ROLE_ARN = "arn:aws:iam::123456789012:role/restore"


def test_defaults_follow_migration_direction():
    config = RestoreConfig(bucket_paths=["a/x"])

    assert config.deprecated_tier == "REDUCED_REDUNDANCY"
    assert config.target_tier == "STANDARD"
    assert config.ttl_days == 30
    assert config.max_concurrent_ops == 5
    assert config.throttle_seconds == 2.0
    assert config.credential_refresh_seconds == 1800
    assert config.ledger_path == DEFAULT_LEDGER_PATH


def test_invalid_values_are_collected():
    with pytest.raises(ConfigurationError) as exc_info:
        RestoreConfig(
            bucket_paths=[],
            region="nowhere",
            ttl_days=-1,
            role_arn="not-an-arn",
            max_concurrent_ops=0,
        )

    errors = exc_info.value.details["errors"]
    assert len(errors) == 5


def test_malformed_paths_are_accepted():
    config = RestoreConfig(bucket_paths=["bad", "a/x", "a/x"])

    assert config.bucket_paths == ["bad", "a/x", "a/x"]


def test_same_tiers_rejected():
    with pytest.raises(ConfigurationError):
        RestoreConfig(bucket_paths=["a/x"], target_tier="REDUCED_REDUNDANCY")


def test_with_updates_returns_new_validated_config():
    config = RestoreConfig(bucket_paths=["a/x"])

    updated = config.with_updates(region="eu-west-1")

    assert updated.region == "eu-west-1"
    assert config.region == "us-east-1"
    with pytest.raises(ConfigurationError):
        config.with_updates(max_concurrent_ops=0)


# ============================================================================
# Environment parsing
# ============================================================================

def test_parse_bucket_paths_trims_and_keeps_duplicates():
    assert parse_bucket_paths(" a/x , ,a/y,a/x ") == ["a/x", "a/y", "a/x"]
    assert parse_bucket_paths(None) == []


@pytest.mark.parametrize("value,expected", [(None, 30), ("", 30), ("0", 0), ("7", 7)])
def test_parse_ttl_days(value, expected):
    assert parse_ttl_days(value) == expected


@pytest.mark.parametrize("value", ["-1", "abc", "1.5"])
def test_parse_ttl_days_rejects_invalid(value):
    with pytest.raises(ConfigurationError):
        parse_ttl_days(value)


def test_profile_env_name_is_normalized():
    assert profile_env_name("prod-east.1") == "S3RR_ROLE_ARN_PROD_EAST_1"


def test_resolve_role_arn_precedence():
    env = {
        profile_env_name("prod"): ROLE_ARN,
        "S3RR_ROLE_ARN": "arn:aws:iam::000000000000:role/fallback",
    }

    explicit = "arn:aws:iam::111111111111:role/explicit"
    assert resolve_role_arn("prod", explicit, environ=env) == explicit
    assert resolve_role_arn("prod", environ=env) == ROLE_ARN
    assert resolve_role_arn(None, environ=env) == "arn:aws:iam::000000000000:role/fallback"
    assert resolve_role_arn(None, environ={}) is None


def test_resolve_unknown_profile_raises():
    with pytest.raises(ConfigurationError, match="staging"):
        resolve_role_arn("staging", environ={})


def test_create_config_from_env():
    env = {
        "S3RR_BUCKET_PATHS": "a/x,b/y",
        "AWS_REGION": "eu-west-1",
        "S3RR_TTL_DAYS": "14",
        "S3RR_PROFILE": "prod",
        profile_env_name("prod"): ROLE_ARN,
        "S3RR_LEDGER_PATH": "/tmp/ledger.db",
        "S3RR_MAX_CONCURRENT_OPS": "3",
        "S3RR_CALL_TIMEOUT": "60",
        "SLACK_CHANNEL_ID": "C1",
    }

    config = create_config_from_env(env)

    assert config.bucket_paths == ["a/x", "b/y"]
    assert config.region == "eu-west-1"
    assert config.ttl_days == 14
    assert config.role_arn == ROLE_ARN
    assert config.profile == "prod"
    assert config.ledger_path == Path("/tmp/ledger.db")
    assert config.max_concurrent_ops == 3
    assert config.call_timeout_seconds == 60.0
    assert config.slack_channel == "C1"


def test_create_config_from_env_requires_paths_and_region():
    with pytest.raises(ConfigurationError, match="bucket paths"):
        create_config_from_env({"AWS_REGION": "us-east-1"})

    with pytest.raises(ConfigurationError, match="region"):
        create_config_from_env({"S3RR_BUCKET_PATHS": "a/x"})


def test_create_config_from_env_rejects_bad_concurrency():
    with pytest.raises(ConfigurationError):
        create_config_from_env({
            "S3RR_BUCKET_PATHS": "a/x",
            "AWS_REGION": "us-east-1",
            "S3RR_MAX_CONCURRENT_OPS": "zero",
        })
