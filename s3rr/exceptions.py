# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Exceptions - Custom exceptions for the s3rr package.
"""


class S3RRError(Exception):
    """Base exception for all S3RR errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(S3RRError):
    """Raised when configuration is invalid."""

    pass


class LedgerError(S3RRError):
    """Raised when the request ledger cannot be read or written."""

    pass


class CredentialError(S3RRError):
    """Raised when credentials cannot be assumed or are not yet available."""

    pass


class ObjectStoreError(S3RRError):
    """Raised when an object store call fails."""

    pass


class NotificationError(S3RRError):
    """Raised when a status notification cannot be delivered."""

    pass


class InvalidBucketPathError(S3RRError):
    """Raised when a bucket path is not of the form bucket/prefix."""

    pass
