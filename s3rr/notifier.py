# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Notifier - Human-readable status updates for restore requests.

The engine emits four kinds of events (request created, paths updated,
failed paths, request completed). The StatusReporter turns them into text
and posts them through a Notifier. The first message for a request opens a
thread; every later message for that request replies into it.

Notification problems are logged and never propagated: a restore run must
not fail because Slack is unreachable or not configured.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Dict, List, Protocol

import httpx
import structlog

from s3rr.errors import explain_missing_slack_channel, explain_missing_slack_token
from s3rr.exceptions import NotificationError

logger = structlog.get_logger()

SLACK_API_URL = "https://slack.com/api"


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class RequestCreated:
    """A ledger row was created for a new request."""

    request_id: str
    paths: List[str]
    ttl_days: int
    created_at: str = field(
        default_factory=lambda: datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    )
    processed: List[str] = field(default_factory=list)
    updated_at: str | None = None


@dataclass(frozen=True)
class PathsUpdated:
    """A path was marked processed; completed means the row was deleted."""

    request_id: str
    pending: List[str]
    processed: List[str]
    completed: bool = False


@dataclass(frozen=True)
class RequestFailedPaths:
    """Summary of path-level failures for a request."""

    request_id: str
    failed_paths: List[str]


@dataclass(frozen=True)
class RequestCompleted:
    """The coordinator joined every path restorer."""

    request_id: str


StatusEvent = RequestCreated | PathsUpdated | RequestFailedPaths | RequestCompleted


def format_event(event: StatusEvent) -> str:
    """Render an event as a status message."""
    if isinstance(event, RequestCreated):
        return (
            f"Created database record for Request ID: {event.request_id}\n"
            f"Bucket Paths: {json.dumps(event.paths)}\n"
            f"TTL: {event.ttl_days}\n"
            f"Processed Paths: {json.dumps(event.processed)}\n"
            f"Created At: {event.created_at}\n"
            f"Updated At: {event.updated_at or event.created_at}\n"
        )

    if isinstance(event, PathsUpdated):
        if event.completed:
            return (
                f"All paths processed for Request ID: {event.request_id}. "
                "Record deleted.\n"
            )
        return (
            f"Updated database record for Request ID: {event.request_id}\n"
            f"Remaining Bucket Paths: {json.dumps(event.pending)}\n"
            f"Processed Paths: {json.dumps(event.processed)}\n"
        )

    if isinstance(event, RequestFailedPaths):
        return (
            f"Failed paths for Request ID: {event.request_id}\n"
            f"{json.dumps(event.failed_paths)}\n"
        )

    if isinstance(event, RequestCompleted):
        return f"Restore process completed for Request ID: {event.request_id}\n"

    raise TypeError(f"Unknown status event: {event!r}")


# ============================================================================
# Notifiers
# ============================================================================

class Notifier(Protocol):
    """Protocol for posting status messages to an external channel."""

    async def post(
        self,
        channel: str,
        content: str,
        thread_ref: str | None = None,
    ) -> str:
        """
        Post a message.

        Args:
            channel: Destination channel
            content: Message text
            thread_ref: Reference of a message to reply to

        Returns:
            Reference of the posted message

        Raises:
            NotificationError: If the message could not be delivered
        """
        ...

    async def close(self) -> None:
        ...


class NullNotifier:
    """Notifier that drops every message."""

    async def post(
        self,
        channel: str,
        content: str,
        thread_ref: str | None = None,
    ) -> str:
        return thread_ref or ""

    async def close(self) -> None:
        return None


class SlackNotifier:
    """Slack Web API notifier (chat.postMessage)."""

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        base_url: str = SLACK_API_URL,
        timeout: float = 10.0,
    ):
        self.token = token if token is not None else os.getenv("SLACK_API_TOKEN")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def post(
        self,
        channel: str,
        content: str,
        thread_ref: str | None = None,
    ) -> str:
        if not self.token:
            raise NotificationError(explain_missing_slack_token())

        payload: Dict[str, str] = {"channel": channel, "text": content}
        if thread_ref:
            payload["thread_ts"] = thread_ref

        try:
            response = await self._client.post(
                "/chat.postMessage",
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationError(
                f"Failed to send Slack message: {e}",
                details={"channel": channel},
            ) from e

        if not body.get("ok"):
            raise NotificationError(
                f"Failed to send Slack message: {body.get('error', 'unknown_error')}",
                details={"channel": channel},
            )

        return body.get("ts", "")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ============================================================================
# Reporter
# ============================================================================

class StatusReporter:
    """
    Posts status events for restore requests.

    Holds the thread reference of each request so that all messages about
    one request end up in the same thread.
    """

    def __init__(self, notifier: Notifier, channel: str | None):
        self.notifier = notifier
        self.channel = channel
        self._threads: Dict[str, str] = {}

    async def emit(self, event: StatusEvent) -> str | None:
        """
        Post an event. Returns the message reference, or None on failure.
        """
        message = format_event(event)
        logger.info(
            "status_event",
            kind=type(event).__name__,
            request_id=event.request_id,
        )

        if not self.channel:
            logger.warning("notification_skipped", reason=explain_missing_slack_channel())
            return None

        thread_ref = self._threads.get(event.request_id)
        try:
            ref = await self.notifier.post(self.channel, message, thread_ref)
        except Exception as e:
            logger.error(
                "notification_failed",
                request_id=event.request_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if thread_ref is None and ref:
            self._threads[event.request_id] = ref
        return ref

    def thread_for(self, request_id: str) -> str | None:
        return self._threads.get(request_id)

    def release(self, request_id: str) -> None:
        """Forget the thread of a request whose run has finished."""
        self._threads.pop(request_id, None)

    async def close(self) -> None:
        await self.notifier.close()
