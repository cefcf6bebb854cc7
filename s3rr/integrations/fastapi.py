# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR FastAPI Integration - Admin endpoints for restore requests.

This module exposes the request ledger for auditing and lets operators
start, resume or cancel restore runs:
- Lifespan management (credential refresh task, notifier)
- Protected admin endpoints
- Health checks
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import List

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from s3rr.config import RestoreConfig
from s3rr.core import (
    RestoreState,
    cancel_restore,
    initialize_restore_state,
    outcome_summary,
    resume_restore,
    run_restore,
    shutdown_restore_state,
)
from s3rr.exceptions import ConfigurationError, CredentialError, LedgerError

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)


class RunRequest(BaseModel):
    """Body of POST /run; paths default to the configured bucket paths."""

    paths: List[str] | None = None


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the S3RR_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("S3RR_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="S3RR_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def register_s3rr_routes(
    app: FastAPI,
    config: RestoreConfig,
    state: RestoreState,
    prefix: str = "/admin/s3rr",
) -> None:
    """
    Register S3RR admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        config: Restore configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/s3rr)
    """

    @app.post(f"{prefix}/run", dependencies=[Depends(verify_api_key)])
    async def trigger_restore(request: RunRequest | None = None) -> dict:
        """
        Start a restore request and wait for it to complete.

        Uses the configured bucket paths unless paths are given.
        """
        paths = request.paths if request is not None else None
        try:
            outcome = await run_restore(config, state, paths)
        except ConfigurationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except LedgerError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return outcome_summary(outcome)

    @app.get(f"{prefix}/requests", dependencies=[Depends(verify_api_key)])
    async def list_pending_requests(limit: int = 50, offset: int = 0) -> list:
        """
        List requests that still have pending paths.
        """
        return await state["ledger"].list(limit, offset)

    @app.get(f"{prefix}/requests/{{request_id}}", dependencies=[Depends(verify_api_key)])
    async def get_pending_request(request_id: str) -> dict:
        """
        Get one request; 404 means unknown or fully processed.
        """
        record = await state["ledger"].get(request_id)
        if record is None:
            raise HTTPException(
                status_code=404,
                detail=f"Request not found or already completed: {request_id}",
            )
        return dict(record)

    @app.post(f"{prefix}/requests/{{request_id}}/resume", dependencies=[Depends(verify_api_key)])
    async def resume_pending_request(request_id: str) -> dict:
        """
        Restore the pending paths of an existing request.
        """
        try:
            outcome = await resume_restore(config, state, request_id)
        except LedgerError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return outcome_summary(outcome)

    @app.post(f"{prefix}/cancel", dependencies=[Depends(verify_api_key)])
    async def cancel_running() -> dict:
        """
        Ask running path restorers to stop at their next object.
        """
        return {"cancelled": cancel_restore(state)}

    @app.get(f"{prefix}/status", dependencies=[Depends(verify_api_key)])
    async def get_status() -> dict:
        """
        Get current status and totals.
        """
        return {
            "last_request_id": state["last_request_id"],
            "last_run_at": (
                state["last_run_at"].isoformat() if state["last_run_at"] else None
            ),
            "total_requests": state["total_requests"],
            "total_failed_paths": state["total_failed_paths"],
            "region": config.region,
            "max_concurrent_ops": config.max_concurrent_ops,
            "running_requests": list(state["running"]),
        }

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Verifies the ledger and the credential cache.
        """
        ledger_ok = True
        ledger_error = None
        try:
            await state["ledger"].list(limit=1)
        except Exception as e:
            ledger_ok = False
            ledger_error = str(e)

        credentials_ok = None
        credentials_expiration = None
        if state["credentials"] is not None:
            try:
                material = await state["credentials"].retrieve()
                credentials_ok = not material.expires_within(0)
                if material.expiration:
                    credentials_expiration = material.expiration.isoformat()
            except CredentialError:
                credentials_ok = False

        status = "healthy"
        if not ledger_ok or credentials_ok is False:
            status = "degraded"
        if not ledger_ok and credentials_ok is False:
            status = "unhealthy"

        return {
            "status": status,
            "ledger_accessible": ledger_ok,
            "ledger_error": ledger_error,
            "credentials_valid": credentials_ok,
            "credentials_expiration": credentials_expiration,
            "timestamp": datetime.now(UTC).isoformat(),
        }


@asynccontextmanager
async def s3rr_lifespan(app: FastAPI, config: RestoreConfig):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: s3rr_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Restore configuration
    """
    logger.info("s3rr_lifespan_starting")

    state = await initialize_restore_state(config)
    app.state.s3rr_state = state
    app.state.s3rr_config = config

    register_s3rr_routes(app, config, state)

    logger.info("s3rr_lifespan_started")

    try:
        yield
    finally:
        logger.info("s3rr_lifespan_stopping")
        await shutdown_restore_state(state)
        logger.info("s3rr_lifespan_stopped")


def get_s3rr_state(app: FastAPI) -> RestoreState:
    """
    Get S3RR state from a FastAPI app.

    Raises:
        RuntimeError: If S3RR not initialized
    """
    state = getattr(app.state, "s3rr_state", None)
    if not state:
        raise RuntimeError("S3RR not initialized. Use s3rr_lifespan first.")
    return state
