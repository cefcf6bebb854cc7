# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI application exposing the S3RR admin endpoints.

Run with:
    uvicorn examples.admin_app:app

Environment variables:
    S3RR_BUCKET_PATHS: Default bucket/prefix list for POST /admin/s3rr/run
    AWS_REGION: AWS region
    S3RR_PROFILE / S3RR_ROLE_ARN_<PROFILE>: Role used for object store access
    SLACK_API_TOKEN, SLACK_CHANNEL_ID: Status notifications (optional)
    S3RR_ADMIN_API_KEY: API key for admin endpoints
"""

from fastapi import FastAPI

from s3rr.env import create_config_from_env
from s3rr.integrations.fastapi import s3rr_lifespan

config = create_config_from_env()

app = FastAPI(
    title="S3RR Admin",
    description="Audit and resume REDUCED_REDUNDANCY restore requests",
    version="0.1.0",
    lifespan=lambda app: s3rr_lifespan(app, config),
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "S3RR admin",
        "docs": "/docs",
        "s3rr_admin": "/admin/s3rr/health",
    }


# ============================================================================
# S3RR Admin Endpoints (registered by s3rr_lifespan)
# ============================================================================
#
# GET  /admin/s3rr/health                    - Ledger and credential health
# GET  /admin/s3rr/status                    - Totals for this process
# POST /admin/s3rr/run                       - Start a restore request
# GET  /admin/s3rr/requests                  - Requests with pending paths
# GET  /admin/s3rr/requests/{id}             - One pending request
# POST /admin/s3rr/requests/{id}/resume      - Restore pending paths again
# POST /admin/s3rr/cancel                    - Stop running restorers
#
# All admin endpoints require: Authorization: Bearer <S3RR_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
