# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for S3RR tests.

Provides an in-memory object store, a recording notifier, a scripted
credential source, and test configuration helpers.
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import AsyncIterator, Dict, Generator, List, Set, Tuple

import pytest

from s3rr.credentials import CredentialCache, CredentialMaterial
from s3rr.exceptions import CredentialError, NotificationError, ObjectStoreError
from s3rr.store import ObjectSummary

# Set test environment variables
os.environ["S3RR_ADMIN_API_KEY"] = "test-api-key-12345"


class FakeObjectStore:
    """
    In-memory ObjectStore.

    objects maps bucket -> {key: storage_class}; keys are listed in
    insertion order, page_size at a time.
    """

    def __init__(
        self,
        objects: Dict[str, Dict[str, str]] | None = None,
        page_size: int = 1000,
        credentials: CredentialCache | None = None,
    ):
        self.objects: Dict[str, Dict[str, str]] = objects or {}
        self.page_size = page_size
        self.credentials = credentials
        self.calls: List[Tuple[str, str, str]] = []
        self.failing_listings: Set[str] = set()
        self.failing_changes: Set[str] = set()
        # key -> tier reported by get_tier regardless of the stored value
        self.verify_overrides: Dict[str, str] = {}
        self.change_delay = 0.0
        self.list_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        # access key seen by each change_tier call, in order
        self.seen_access_keys: List[str] = []

    async def _observe_credentials(self) -> None:
        if self.credentials is not None:
            material = await self.credentials.retrieve()
            self.seen_access_keys.append(material.access_key_id)

    async def list_under(self, bucket: str, prefix: str) -> AsyncIterator[List[ObjectSummary]]:
        self.calls.append(("list", bucket, prefix))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.list_delay:
                await asyncio.sleep(self.list_delay)
            if bucket in self.failing_listings:
                raise ObjectStoreError(f"Failed to list objects: {bucket}")

            keys = [k for k in self.objects.get(bucket, {}) if k.startswith(prefix)]
            for start in range(0, len(keys), self.page_size):
                chunk = keys[start:start + self.page_size]
                yield [ObjectSummary(key=k, storage_class=self.objects[bucket][k]) for k in chunk]
        finally:
            self.in_flight -= 1

    async def change_tier(self, bucket: str, key: str, target_tier: str) -> None:
        self.calls.append(("change", bucket, key))
        await self._observe_credentials()
        if self.change_delay:
            await asyncio.sleep(self.change_delay)
        if key in self.failing_changes:
            raise ObjectStoreError(f"Failed to restore object {key}")
        self.objects[bucket][key] = target_tier

    async def get_tier(self, bucket: str, key: str) -> str:
        self.calls.append(("get", bucket, key))
        if key in self.verify_overrides:
            return self.verify_overrides[key]
        return self.objects[bucket][key]

    def touched_buckets(self) -> Set[str]:
        return {bucket for _, bucket, _ in self.calls}


class RecordingNotifier:
    """Notifier that records every post."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.posts: List[Tuple[str, str, str | None]] = []
        self.closed = False

    async def post(self, channel: str, content: str, thread_ref: str | None = None) -> str:
        if self.fail:
            raise NotificationError("No SLACK_API_TOKEN set. Slack messages will not be sent.")
        self.posts.append((channel, content, thread_ref))
        return f"ts-{len(self.posts)}"

    async def close(self) -> None:
        self.closed = True

    def contents(self) -> List[str]:
        return [content for _, content, _ in self.posts]


class ScriptedCredentialSource:
    """CredentialSource returning key-1, key-2, ... on successive calls."""

    def __init__(self, fail_from: int | None = None):
        self.calls = 0
        self.fail_from = fail_from

    async def assume_role(self, role_arn: str, region: str) -> CredentialMaterial:
        self.calls += 1
        if self.fail_from is not None and self.calls >= self.fail_from:
            raise CredentialError("AccessDenied")
        return CredentialMaterial(
            access_key_id=f"key-{self.calls}",
            secret_access_key=f"secret-{self.calls}",
            session_token=f"token-{self.calls}",
            expiration=datetime.now(UTC) + timedelta(hours=1),
        )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def credential_source() -> ScriptedCredentialSource:
    return ScriptedCredentialSource()


@pytest.fixture
def test_config(temp_dir: Path):
    """Create a test configuration without throttling."""
    from s3rr.config import RestoreConfig

    return RestoreConfig(
        bucket_paths=["a/x", "a/y"],
        region="us-east-1",
        ttl_days=30,
        ledger_path=temp_dir / "ledger.db",
        throttle_seconds=0,
        call_timeout_seconds=5,
        slack_channel="C0123456",
    )


@pytest.fixture
def reporter(recording_notifier: RecordingNotifier):
    from s3rr.notifier import StatusReporter

    return StatusReporter(recording_notifier, "C0123456")


@pytest.fixture
def ledger(temp_dir: Path, reporter):
    from s3rr.ledger import RequestLedger

    return RequestLedger(temp_dir / "ledger.db", reporter)
