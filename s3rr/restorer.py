# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Path Restorer - Restore every deprecated-tier object under one path.

For one bucket/prefix path the restorer:
1. Splits the path (malformed paths fail without touching the store)
2. Pages through the listing in order
3. Rewrites each object whose storage class is exactly the deprecated tier
   and re-reads its metadata to confirm the target tier landed
4. Sleeps for the throttle delay after each successful restoration
5. Marks the path processed in the ledger once the listing is exhausted

Object failures are logged and skipped. Listing, ledger and cancellation
failures fail the whole path, which then stays pending in the ledger.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import List, Tuple

import structlog

from s3rr.config import RestoreConfig
from s3rr.exceptions import InvalidBucketPathError, LedgerError, S3RRError
from s3rr.ledger import RequestLedger
from s3rr.store import ObjectStore

logger = structlog.get_logger()


@dataclass
class PathResult:
    """Outcome of restoring one bucket path."""

    path: str
    failed: bool = False
    error: str | None = None
    ledger_updated: bool = False
    request_complete: bool = False
    scanned_count: int = 0
    restored_keys: List[str] = field(default_factory=list)
    failed_keys: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class PathCancelledError(S3RRError):
    """Raised inside a restorer when the run was cancelled."""

    pass


def split_bucket_path(bucket_path: str) -> Tuple[str, str]:
    """
    Split bucket/prefix at the first separator.

    Raises:
        InvalidBucketPathError: If there is no separator or no bucket
    """
    bucket, sep, prefix = bucket_path.partition("/")
    if not sep or not bucket:
        raise InvalidBucketPathError(
            f"Invalid bucket path: {bucket_path}",
            details={"bucket_path": bucket_path},
        )
    return bucket, prefix


async def restore_object(
    store: ObjectStore,
    bucket: str,
    key: str,
    config: RestoreConfig,
) -> bool:
    """
    Change one object's tier and verify it.

    Returns:
        True if the object now reports the target tier
    """
    try:
        async with asyncio.timeout(config.call_timeout_seconds):
            await store.change_tier(bucket, key, config.target_tier)
        async with asyncio.timeout(config.call_timeout_seconds):
            tier = await store.get_tier(bucket, key)
    except TimeoutError:
        logger.error("object_restore_timeout", bucket=bucket, key=key)
        return False
    except S3RRError as e:
        logger.error("object_restore_failed", bucket=bucket, key=key, error=str(e))
        return False

    if tier != config.target_tier:
        logger.error(
            "object_restore_unverified",
            bucket=bucket,
            key=key,
            expected=config.target_tier,
            actual=tier,
        )
        return False

    logger.info("object_restored", bucket=bucket, key=key, storage_class=tier)
    return True


def _check_cancelled(cancel_event: asyncio.Event | None, bucket_path: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PathCancelledError(
            f"Restore cancelled: {bucket_path}",
            details={"bucket_path": bucket_path},
        )


async def _restore_listing(
    store: ObjectStore,
    bucket: str,
    prefix: str,
    bucket_path: str,
    config: RestoreConfig,
    result: PathResult,
    cancel_event: asyncio.Event | None,
) -> None:
    pages = store.list_under(bucket, prefix)
    try:
        while True:
            _check_cancelled(cancel_event, bucket_path)
            try:
                async with asyncio.timeout(config.call_timeout_seconds):
                    page = await anext(pages)
            except StopAsyncIteration:
                return

            for obj in page:
                result.scanned_count += 1
                if obj.storage_class != config.deprecated_tier:
                    continue

                _check_cancelled(cancel_event, bucket_path)
                if await restore_object(store, bucket, obj.key, config):
                    result.restored_keys.append(obj.key)
                    if config.throttle_seconds:
                        await asyncio.sleep(config.throttle_seconds)
                else:
                    result.failed_keys.append(obj.key)
    finally:
        aclose = getattr(pages, "aclose", None)
        if aclose is not None:
            await aclose()


async def restore_path(
    bucket_path: str,
    request_id: str,
    *,
    store: ObjectStore,
    ledger: RequestLedger,
    config: RestoreConfig,
    cancel_event: asyncio.Event | None = None,
) -> PathResult:
    """
    Restore all deprecated-tier objects under a bucket path.

    Never raises for path-level problems; they are reported through
    PathResult.failed so the coordinator can aggregate them.
    """
    start_time = datetime.now(UTC)
    result = PathResult(path=bucket_path)

    def _finish() -> PathResult:
        result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
        return result

    try:
        bucket, prefix = split_bucket_path(bucket_path)
    except InvalidBucketPathError as e:
        logger.error("invalid_bucket_path", bucket_path=bucket_path)
        result.failed = True
        result.error = str(e)
        return _finish()

    logger.info(
        "path_restore_started",
        request_id=request_id,
        bucket=bucket,
        prefix=prefix,
    )

    try:
        await _restore_listing(store, bucket, prefix, bucket_path, config, result, cancel_event)
    except TimeoutError:
        logger.error("path_listing_timeout", bucket_path=bucket_path)
        result.failed = True
        result.error = f"Timed out listing objects for bucket path {bucket_path}"
        return _finish()
    except S3RRError as e:
        logger.error("path_listing_failed", bucket_path=bucket_path, error=str(e))
        result.failed = True
        result.error = str(e)
        return _finish()

    try:
        result.request_complete = await ledger.mark_processed(request_id, bucket_path)
        result.ledger_updated = True
    except LedgerError as e:
        logger.error(
            "ledger_update_failed",
            request_id=request_id,
            bucket_path=bucket_path,
            error=str(e),
        )
        result.failed = True
        result.error = str(e)
        return _finish()

    logger.info(
        "path_restore_completed",
        request_id=request_id,
        bucket_path=bucket_path,
        scanned=result.scanned_count,
        restored=len(result.restored_keys),
        failed=len(result.failed_keys),
    )
    return _finish()
