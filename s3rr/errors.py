# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for S3RR.

These helpers centralize wording for common configuration errors so that
the CLI and the environment loader present consistent, actionable messages.
"""


def explain_missing_bucket_paths() -> str:
    """
    Explain that no bucket paths were provided.
    """

    return (
        "No bucket paths were provided. "
        "Pass --bucket-paths bucket/prefix[,bucket/prefix...] "
        "or set the S3RR_BUCKET_PATHS environment variable."
    )


def explain_missing_region() -> str:
    """
    Explain that the AWS region is missing.
    """

    return (
        "AWS region is not configured. "
        "Pass --region or set the AWS_REGION environment variable."
    )


def explain_invalid_ttl(value: str | None) -> str:
    """
    Explain that the TTL value is invalid.
    """

    return (
        f"Invalid TTL value: {value!r}. "
        "It must be a non-negative integer number of days."
    )


def explain_invalid_integer_env(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable could not be parsed.
    """

    return f"Invalid {name} value: {value!r}. Expected a positive integer."


def explain_unknown_profile(profile: str) -> str:
    """
    Explain that no role ARN is registered for an identity profile.
    """

    env_name = profile_env_name(profile)
    return (
        f"No role ARN is configured for profile {profile!r}. "
        f"Set {env_name}=arn:aws:iam::<account>:role/<name> or pass --role-arn."
    )


def explain_missing_slack_token() -> str:
    """
    Explain that Slack notifications are disabled because no token is set.
    """

    return "No SLACK_API_TOKEN set. Slack messages will not be sent."


def explain_missing_slack_channel() -> str:
    """
    Explain that Slack notifications have nowhere to go.
    """

    return "No SLACK_CHANNEL_ID set. Slack messages will not be sent."


def profile_env_name(profile: str) -> str:
    """Environment variable that holds the role ARN for a profile."""
    normalized = "".join(c if c.isalnum() else "_" for c in profile.upper())
    return f"S3RR_ROLE_ARN_{normalized}"
