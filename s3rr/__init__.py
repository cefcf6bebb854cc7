# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR - Reduced-redundancy restore engine for S3.

Moves objects from the deprecated REDUCED_REDUNDANCY storage class to
STANDARD, path by path, under a bounded concurrency gate. Progress is kept
in a durable SQLite ledger so long-running requests can be audited and
resumed, and short-lived credentials are refreshed mid-run.
"""

__version__ = "0.1.0"

# Configuration
from s3rr.config import RestoreConfig, StorageTier

# Core functions
from s3rr.core import (
    RequestOutcome,
    cancel_restore,
    initialize_restore_state,
    resume_restore,
    run_restore,
    shutdown_restore_state,
)

# Environment-based configuration
from s3rr.env import create_config_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration
    "RestoreConfig",
    "StorageTier",
    "create_config_from_env",
    # Core orchestration functions
    "RequestOutcome",
    "initialize_restore_state",
    "run_restore",
    "resume_restore",
    "cancel_restore",
    "shutdown_restore_state",
]
