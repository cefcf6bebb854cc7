# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints for restore requests.
"""

from s3rr.integrations.fastapi import (
    s3rr_lifespan,
    register_s3rr_routes,
    verify_api_key,
)

__all__ = [
    "s3rr_lifespan",
    "register_s3rr_routes",
    "verify_api_key",
]
