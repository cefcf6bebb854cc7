# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Request Ledger - Durable record of pending and processed paths.

Each restore request owns exactly one row in the restore_requests table.
The row is created before any restoration work begins, updated once per
completed path, and deleted by the update that empties the pending list.
A missing row therefore means the request was fully processed.

Path lists are stored as JSON text. Removal from the pending list is
first-match and nothing is deduplicated: marking the same path twice
appends it twice to processed_paths but removes it only once from
bucket_paths.
"""

import asyncio
import json
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, List, Tuple, TypedDict

import aiosqlite
import structlog

from s3rr.exceptions import LedgerError
from s3rr.notifier import PathsUpdated, RequestCreated, StatusReporter

logger = structlog.get_logger()


class RestoreRequest(TypedDict):
    """Ledger row for one restore request."""

    request_id: str
    pending_paths: List[str]
    processed_paths: List[str]
    ttl_days: int
    created_at: str  # RFC3339, UTC
    updated_at: str  # RFC3339, UTC


def utc_timestamp() -> str:
    """Current time as an RFC3339 UTC timestamp with second precision."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _row_to_request(row: Tuple) -> RestoreRequest:
    return RestoreRequest(
        request_id=row[0],
        pending_paths=json.loads(row[1]),
        processed_paths=json.loads(row[2]),
        ttl_days=row[3],
        created_at=row[4],
        updated_at=row[5],
    )


async def init_ledger_db(db_path: Path) -> None:
    """
    Initialize the ledger database schema.

    Creates the restore_requests table if it doesn't exist. This is
    idempotent and safe to call before every request.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS restore_requests (
                    request_id TEXT PRIMARY KEY,
                    bucket_paths TEXT NOT NULL,
                    ttl INTEGER NOT NULL,
                    processed_paths TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.commit()
    except Exception as e:
        raise LedgerError(
            f"Failed to initialize ledger database: {e}",
            details={"db_path": str(db_path)},
        ) from e


async def insert_request(
    db: aiosqlite.Connection,
    request_id: str,
    paths: List[str],
    ttl_days: int,
) -> RestoreRequest:
    """
    Insert a new request row with every path pending.

    Raises:
        LedgerError: If a row with the same request_id already exists
    """
    now = utc_timestamp()
    try:
        await db.execute(
            """
            INSERT INTO restore_requests
            (request_id, bucket_paths, ttl, processed_paths, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (request_id, json.dumps(list(paths)), ttl_days, json.dumps([]), now, now),
        )
        await db.commit()
    except aiosqlite.IntegrityError as e:
        raise LedgerError(
            f"Request already exists: {request_id}",
            details={"request_id": request_id},
        ) from e

    return RestoreRequest(
        request_id=request_id,
        pending_paths=list(paths),
        processed_paths=[],
        ttl_days=ttl_days,
        created_at=now,
        updated_at=now,
    )


async def get_request(
    db: aiosqlite.Connection,
    request_id: str,
) -> RestoreRequest | None:
    """
    Get a request row.

    Returns:
        The request, or None if it does not exist (never created, or
        fully processed)
    """
    async with db.execute(
        """
        SELECT request_id, bucket_paths, processed_paths, ttl, created_at, updated_at
        FROM restore_requests
        WHERE request_id = ?
        """,
        (request_id,),
    ) as cursor:
        row = await cursor.fetchone()

    return _row_to_request(row) if row else None


async def list_requests(
    db: aiosqlite.Connection,
    limit: int = 50,
    offset: int = 0,
) -> List[RestoreRequest]:
    """
    List requests that still have pending paths, oldest first.
    """
    records: List[RestoreRequest] = []

    async with db.execute(
        """
        SELECT request_id, bucket_paths, processed_paths, ttl, created_at, updated_at
        FROM restore_requests
        ORDER BY created_at, request_id
        LIMIT ? OFFSET ?
        """,
        (limit, offset),
    ) as cursor:
        async for row in cursor:
            records.append(_row_to_request(row))

    return records


def apply_processed(
    pending: List[str],
    processed: List[str],
    path: str,
) -> Tuple[List[str], List[str]]:
    """
    Move path from pending to processed.

    The path is always appended to processed. Only the first matching
    pending entry is removed; an unknown path leaves pending unchanged.
    """
    new_pending = list(pending)
    new_processed = list(processed) + [path]
    if path in new_pending:
        new_pending.remove(path)
    return new_pending, new_processed


class RequestLedger:
    """
    Single writer for restore_requests rows.

    Mutations of one request are serialized with a per-request lock so
    that concurrent path restorers never compute their update from the
    same stale pending list. Different requests do not contend.
    """

    def __init__(self, db_path: Path, reporter: StatusReporter):
        self.db_path = Path(db_path)
        self.reporter = reporter
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, request_id: str) -> asyncio.Lock:
        lock = self._locks.get(request_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[request_id] = lock
        return lock

    def release(self, request_id: str) -> None:
        """Drop the per-request lock once no run holds it."""
        lock = self._locks.get(request_id)
        if lock is not None and not lock.locked():
            del self._locks[request_id]

    async def create(self, request_id: str, paths: List[str], ttl_days: int) -> RestoreRequest:
        """
        Provision the table and insert the request row.

        Raises:
            LedgerError: If the table or row cannot be created
        """
        await init_ledger_db(self.db_path)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                record = await insert_request(db, request_id, paths, ttl_days)
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(
                f"Failed to insert record: {e}",
                details={"request_id": request_id},
            ) from e

        logger.info(
            "ledger_request_created",
            request_id=request_id,
            paths=record["pending_paths"],
            ttl_days=ttl_days,
        )

        await self.reporter.emit(
            RequestCreated(
                request_id=request_id,
                paths=record["pending_paths"],
                ttl_days=ttl_days,
                created_at=record["created_at"],
                processed=record["processed_paths"],
                updated_at=record["updated_at"],
            )
        )
        return record

    async def mark_processed(self, request_id: str, path: str) -> bool:
        """
        Record that a path finished processing.

        Returns:
            True if no paths remain pending (the row has been deleted)

        Raises:
            LedgerError: If the request does not exist or cannot be updated
        """
        async with self._lock_for(request_id):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    current = await get_request(db, request_id)
                    if current is None:
                        raise LedgerError(
                            f"Request not found: {request_id}",
                            details={"request_id": request_id, "path": path},
                        )

                    pending, processed = apply_processed(
                        current["pending_paths"], current["processed_paths"], path
                    )
                    completed = not pending

                    if completed:
                        await db.execute(
                            "DELETE FROM restore_requests WHERE request_id = ?",
                            (request_id,),
                        )
                    else:
                        await db.execute(
                            """
                            UPDATE restore_requests
                            SET bucket_paths = ?, processed_paths = ?, updated_at = ?
                            WHERE request_id = ?
                            """,
                            (json.dumps(pending), json.dumps(processed), utc_timestamp(), request_id),
                        )
                    await db.commit()
            except LedgerError:
                raise
            except Exception as e:
                raise LedgerError(
                    f"Failed to update paths: {e}",
                    details={"request_id": request_id, "path": path},
                ) from e

            logger.info(
                "ledger_path_processed",
                request_id=request_id,
                path=path,
                remaining=pending,
                processed=processed,
            )
            await self.reporter.emit(
                PathsUpdated(request_id=request_id, pending=pending, processed=processed)
            )

            if completed:
                logger.info("ledger_request_deleted", request_id=request_id)
                await self.reporter.emit(
                    PathsUpdated(
                        request_id=request_id,
                        pending=[],
                        processed=processed,
                        completed=True,
                    )
                )

        if completed:
            self._locks.pop(request_id, None)
        return completed

    async def get(self, request_id: str) -> RestoreRequest | None:
        await init_ledger_db(self.db_path)
        async with aiosqlite.connect(self.db_path) as db:
            return await get_request(db, request_id)

    async def list(self, limit: int = 50, offset: int = 0) -> List[RestoreRequest]:
        await init_ledger_db(self.db_path)
        async with aiosqlite.connect(self.db_path) as db:
            return await list_requests(db, limit, offset)
