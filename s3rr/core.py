# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Core - Restore coordinator.

This module wires the components together: the request ledger, the
credential cache, the object store and the status reporter. A restore run
creates a ledger row, fans out one path restorer per input path through a
fixed-size gate, joins them all, and reports which paths failed.

The run always ends as "completed"; path failures are reported alongside,
never as an overall failure.
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Dict, List, TypedDict

import structlog

from s3rr.config import RestoreConfig
from s3rr.credentials import CredentialCache, CredentialSource
from s3rr.errors import explain_missing_bucket_paths
from s3rr.exceptions import ConfigurationError, LedgerError
from s3rr.ledger import RequestLedger
from s3rr.notifier import (
    Notifier,
    NullNotifier,
    RequestCompleted,
    RequestFailedPaths,
    StatusReporter,
)
from s3rr.restorer import PathResult, restore_path
from s3rr.store import ObjectStore

logger = structlog.get_logger()


@dataclass
class RequestOutcome:
    """Result of one restore request."""

    request_id: str
    paths: List[str]
    failed_paths: List[str]
    restored_count: int
    failed_object_count: int
    duration_seconds: float
    ledger_complete: bool
    status: str = "completed"
    path_results: List[PathResult] = field(default_factory=list)


class RestoreState(TypedDict):
    """Runtime state shared by restore runs."""

    ledger: RequestLedger
    reporter: StatusReporter
    store: ObjectStore
    credentials: CredentialCache | None
    credentials_stop: Callable[[], Awaitable[None]] | None
    # request_id -> cancellation flag of each run in progress
    running: Dict[str, asyncio.Event]
    last_request_id: str | None
    last_run_at: datetime | None
    total_requests: int
    total_failed_paths: int


def generate_request_id() -> str:
    """128 random bits, hex encoded."""
    return secrets.token_hex(16)


def _default_notifier(config: RestoreConfig) -> Notifier:
    if config.slack_channel:
        from s3rr.notifier import SlackNotifier

        return SlackNotifier()
    return NullNotifier()


async def initialize_restore_state(
    config: RestoreConfig,
    *,
    store: ObjectStore | None = None,
    notifier: Notifier | None = None,
    credential_source: CredentialSource | None = None,
    start_refresh: bool = True,
) -> RestoreState:
    """
    Initialize runtime state for restore runs.

    Assumes the configured role (if any), starts the credential refresh
    task and provisions the ledger table.

    Args:
        config: Restore configuration
        store: Object store override (default: S3ObjectStore)
        notifier: Notifier override (default: Slack when a channel is set)
        credential_source: Credential source override (default: STS)
        start_refresh: Start the periodic credential refresh task

    Returns:
        Initialized RestoreState dictionary

    Raises:
        CredentialError: If the initial role assumption fails
        LedgerError: If the ledger database cannot be provisioned
    """
    from s3rr.ledger import init_ledger_db

    config.ledger_path.parent.mkdir(parents=True, exist_ok=True)
    await init_ledger_db(config.ledger_path)

    credentials: CredentialCache | None = None
    credentials_stop = None
    if config.role_arn:
        if credential_source is None:
            from s3rr.credentials import StsCredentialSource

            credential_source = StsCredentialSource(
                duration_seconds=config.credential_duration_seconds
            )
        credentials = CredentialCache(credential_source, config.role_arn, config.region)
        await credentials.initialize()
        if start_refresh:
            credentials_stop = credentials.start_refresh(config.credential_refresh_seconds)

    if store is None:
        from s3rr.store import S3ObjectStore

        store = S3ObjectStore(
            config.region,
            credentials=credentials,
            list_batch_size=config.list_batch_size,
        )

    reporter = StatusReporter(notifier or _default_notifier(config), config.slack_channel)

    return RestoreState(
        ledger=RequestLedger(config.ledger_path, reporter),
        reporter=reporter,
        store=store,
        credentials=credentials,
        credentials_stop=credentials_stop,
        running={},
        last_request_id=None,
        last_run_at=None,
        total_requests=0,
        total_failed_paths=0,
    )


async def run_restore(
    config: RestoreConfig,
    state: RestoreState,
    paths: List[str] | None = None,
) -> RequestOutcome:
    """
    Run a complete restore request.

    1. Generates a request id and creates the ledger row
    2. Restores every path through the concurrency gate
    3. Reports failed paths (if any) and completion

    Args:
        config: Restore configuration
        state: Runtime state
        paths: Paths to restore (default: config.bucket_paths)

    Returns:
        RequestOutcome with per-path details

    Raises:
        ConfigurationError: If there are no paths to restore
        LedgerError: If the ledger row cannot be created
    """
    paths = list(config.bucket_paths if paths is None else paths)
    if not paths:
        raise ConfigurationError(explain_missing_bucket_paths())
    request_id = generate_request_id()

    logger.info(
        "restore_request_started",
        request_id=request_id,
        paths=paths,
        ttl_days=config.ttl_days,
    )

    try:
        await state["ledger"].create(request_id, paths, config.ttl_days)
    except LedgerError as e:
        logger.error("restore_request_create_failed", request_id=request_id, error=str(e))
        raise

    return await _run_paths(config, state, request_id, paths)


async def resume_restore(
    config: RestoreConfig,
    state: RestoreState,
    request_id: str,
) -> RequestOutcome:
    """
    Resume a request from its ledger row, restoring only pending paths.

    Raises:
        LedgerError: If the request does not exist (or already completed)
    """
    record = await state["ledger"].get(request_id)
    if record is None:
        raise LedgerError(
            f"Request not found or already completed: {request_id}",
            details={"request_id": request_id},
        )

    logger.info(
        "restore_request_resumed",
        request_id=request_id,
        pending=record["pending_paths"],
        processed=record["processed_paths"],
    )
    return await _run_paths(config, state, request_id, record["pending_paths"])


async def _run_paths(
    config: RestoreConfig,
    state: RestoreState,
    request_id: str,
    paths: List[str],
) -> RequestOutcome:
    start_time = datetime.now(UTC)
    gate = asyncio.Semaphore(config.max_concurrent_ops)
    cancel_event = asyncio.Event()
    state["running"][request_id] = cancel_event

    async def _gated(bucket_path: str) -> PathResult:
        async with gate:
            try:
                return await restore_path(
                    bucket_path,
                    request_id,
                    store=state["store"],
                    ledger=state["ledger"],
                    config=config,
                    cancel_event=cancel_event,
                )
            except Exception as e:
                logger.error(
                    "path_restore_crashed",
                    request_id=request_id,
                    bucket_path=bucket_path,
                    error=str(e),
                )
                return PathResult(path=bucket_path, failed=True, error=str(e))

    try:
        results: List[PathResult] = list(await asyncio.gather(*(_gated(p) for p in paths)))

        failed_paths = [r.path for r in results if r.failed]
        if failed_paths:
            logger.warning(
                "restore_request_failed_paths", request_id=request_id, failed_paths=failed_paths
            )
            await state["reporter"].emit(
                RequestFailedPaths(request_id=request_id, failed_paths=failed_paths)
            )

        await state["reporter"].emit(RequestCompleted(request_id=request_id))
    finally:
        state["running"].pop(request_id, None)
        state["ledger"].release(request_id)
        state["reporter"].release(request_id)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    state["last_request_id"] = request_id
    state["last_run_at"] = datetime.now(UTC)
    state["total_requests"] += 1
    state["total_failed_paths"] += len(failed_paths)

    outcome = RequestOutcome(
        request_id=request_id,
        paths=list(paths),
        failed_paths=failed_paths,
        restored_count=sum(len(r.restored_keys) for r in results),
        failed_object_count=sum(len(r.failed_keys) for r in results),
        duration_seconds=duration,
        ledger_complete=any(r.request_complete for r in results),
        path_results=results,
    )

    logger.info(
        "restore_request_completed",
        request_id=request_id,
        restored=outcome.restored_count,
        failed_objects=outcome.failed_object_count,
        failed_paths=failed_paths,
        duration=duration,
    )
    return outcome


def cancel_restore(state: RestoreState) -> List[str]:
    """
    Ask the running path restorers to stop at their next page or object.

    Only runs in progress are affected; later runs start uncancelled.

    Returns:
        Request ids of the cancelled runs
    """
    cancelled = list(state["running"])
    for cancel_event in state["running"].values():
        cancel_event.set()
    logger.warning("restore_cancel_requested", request_ids=cancelled)
    return cancelled


async def shutdown_restore_state(state: RestoreState) -> None:
    """Stop the credential refresh task and close the notifier."""
    if state["credentials_stop"]:
        try:
            await state["credentials_stop"]()
        except Exception as e:
            logger.warning("credentials_stop_failed", error=str(e))

    try:
        await state["reporter"].close()
    except Exception as e:
        logger.warning("notifier_close_failed", error=str(e))

    logger.info("restore_state_shutdown_complete")


def outcome_summary(outcome: RequestOutcome) -> Dict[str, Any]:
    """Plain-dict view of an outcome (without per-object key lists)."""
    return {
        "request_id": outcome.request_id,
        "status": outcome.status,
        "paths": outcome.paths,
        "failed_paths": outcome.failed_paths,
        "restored_count": outcome.restored_count,
        "failed_object_count": outcome.failed_object_count,
        "ledger_complete": outcome.ledger_complete,
        "duration_seconds": outcome.duration_seconds,
    }
