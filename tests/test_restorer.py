# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Path restorer tests.

These tests verify that:
1. Malformed paths fail without touching the object store
2. Only objects in exactly the deprecated tier are rewritten
3. Object failures are skipped while the path still completes
4. Listing failures, timeouts and cancellation leave the path pending
"""

import asyncio

import pytest

from s3rr.credentials import CredentialCache
from s3rr.exceptions import InvalidBucketPathError
from s3rr.restorer import restore_object, restore_path, split_bucket_path

from tests.conftest import FakeObjectStore, ScriptedCredentialSource


# ============================================================================
# Path parsing
# ============================================================================

def test_split_bucket_path_first_separator():
    assert split_bucket_path("bucket/a/b/c") == ("bucket", "a/b/c")


def test_split_bucket_path_empty_prefix_is_valid():
    assert split_bucket_path("bucket/") == ("bucket", "")


@pytest.mark.parametrize("bad", ["bucket", "", "/prefix"])
def test_split_bucket_path_rejects_malformed(bad):
    with pytest.raises(InvalidBucketPathError):
        split_bucket_path(bad)


# ============================================================================
# restore_path
# ============================================================================

@pytest.mark.asyncio
async def test_malformed_path_never_touches_store(test_config, ledger):
    store = FakeObjectStore({"bad": {"k": "REDUCED_REDUNDANCY"}})
    await ledger.create("req-1", ["bad"], 30)

    result = await restore_path("bad", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is True
    assert store.calls == []
    record = await ledger.get("req-1")
    assert record["pending_paths"] == ["bad"]


@pytest.mark.asyncio
async def test_only_exact_deprecated_tier_is_restored(test_config, ledger):
    store = FakeObjectStore({
        "a": {
            "x/one": "REDUCED_REDUNDANCY",
            "x/two": "STANDARD",
            "x/three": "GLACIER",
            "x/four": "reduced_redundancy",
            "x/five": "REDUCED_REDUNDANCY",
            "y/other": "REDUCED_REDUNDANCY",
        }
    })
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is False
    assert result.scanned_count == 5
    assert result.restored_keys == ["x/one", "x/five"]
    changed = [key for op, _, key in store.calls if op == "change"]
    assert changed == ["x/one", "x/five"]
    assert store.objects["a"]["x/four"] == "reduced_redundancy"
    assert store.objects["a"]["y/other"] == "REDUCED_REDUNDANCY"

    record = await ledger.get("req-1")
    assert record["pending_paths"] == ["a/y"]
    assert record["processed_paths"] == ["a/x"]


@pytest.mark.asyncio
async def test_pages_are_processed_in_order(test_config, ledger):
    keys = {f"x/{i:03d}": "REDUCED_REDUNDANCY" for i in range(7)}
    store = FakeObjectStore({"a": keys}, page_size=3)
    await ledger.create("req-1", ["a/x"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.restored_keys == list(keys)
    assert result.request_complete is True
    assert await ledger.get("req-1") is None


@pytest.mark.asyncio
async def test_empty_listing_still_marks_processed(test_config, ledger):
    store = FakeObjectStore({"a": {}})
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is False
    assert result.ledger_updated is True
    assert (await ledger.get("req-1"))["processed_paths"] == ["a/x"]


@pytest.mark.asyncio
async def test_unverified_object_is_failed_but_path_completes(test_config, ledger):
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY", "x/two": "REDUCED_REDUNDANCY"}})
    store.verify_overrides["x/one"] = "REDUCED_REDUNDANCY"
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is False
    assert result.failed_keys == ["x/one"]
    assert result.restored_keys == ["x/two"]
    assert (await ledger.get("req-1"))["processed_paths"] == ["a/x"]


@pytest.mark.asyncio
async def test_change_failure_skips_object(test_config, ledger):
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY", "x/two": "REDUCED_REDUNDANCY"}})
    store.failing_changes.add("x/one")
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is False
    assert result.failed_keys == ["x/one"]
    assert result.restored_keys == ["x/two"]
    # No verification read for the object whose rewrite failed
    assert ("get", "a", "x/one") not in store.calls


@pytest.mark.asyncio
async def test_listing_failure_leaves_path_pending(test_config, ledger):
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY"}})
    store.failing_listings.add("a")
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is True
    assert result.ledger_updated is False
    record = await ledger.get("req-1")
    assert record["pending_paths"] == ["a/x", "a/y"]
    assert record["processed_paths"] == []


@pytest.mark.asyncio
async def test_missing_ledger_row_fails_path(test_config, ledger):
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY"}})
    await ledger.create("other", ["a/x"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)

    assert result.failed is True
    assert result.restored_keys == ["x/one"]
    assert result.ledger_updated is False


@pytest.mark.asyncio
async def test_throttle_sleeps_after_each_success(test_config, ledger):
    config = test_config.with_updates(throttle_seconds=0.05)
    store = FakeObjectStore({"a": {f"x/{i}": "REDUCED_REDUNDANCY" for i in range(3)}})
    store.failing_changes.add("x/2")
    await ledger.create("req-1", ["a/x"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=config)

    assert len(result.restored_keys) == 2
    assert result.duration_seconds >= 0.1


@pytest.mark.asyncio
async def test_object_call_timeout_is_object_failure(test_config, ledger):
    config = test_config.with_updates(call_timeout_seconds=0.05)
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY"}})
    store.change_delay = 0.5
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=config)

    assert result.failed is False
    assert result.failed_keys == ["x/one"]
    assert (await ledger.get("req-1"))["processed_paths"] == ["a/x"]


@pytest.mark.asyncio
async def test_listing_timeout_is_path_failure(test_config, ledger):
    config = test_config.with_updates(call_timeout_seconds=0.05)
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY"}})
    store.list_delay = 0.5
    await ledger.create("req-1", ["a/x", "a/y"], 30)

    result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=config)

    assert result.failed is True
    assert "Timed out" in result.error
    assert (await ledger.get("req-1"))["pending_paths"] == ["a/x", "a/y"]
    assert store.in_flight == 0


@pytest.mark.asyncio
async def test_cancelled_path_stays_pending(test_config, ledger):
    store = FakeObjectStore({"a": {"x/one": "REDUCED_REDUNDANCY"}})
    await ledger.create("req-1", ["a/x"], 30)
    cancel_event = asyncio.Event()
    cancel_event.set()

    result = await restore_path(
        "a/x", "req-1", store=store, ledger=ledger, config=test_config, cancel_event=cancel_event
    )

    assert result.failed is True
    assert result.restored_keys == []
    assert (await ledger.get("req-1"))["pending_paths"] == ["a/x"]


@pytest.mark.asyncio
async def test_credential_refresh_is_seen_mid_path(test_config, ledger):
    cache = CredentialCache(
        ScriptedCredentialSource(), "arn:aws:iam::123456789012:role/restore", "us-east-1"
    )
    await cache.initialize()
    store = FakeObjectStore(
        {"a": {f"x/{i}": "REDUCED_REDUNDANCY" for i in range(6)}}, credentials=cache
    )
    store.change_delay = 0.03
    await ledger.create("req-1", ["a/x"], 30)

    stop = cache.start_refresh(interval_seconds=0.04)
    try:
        result = await restore_path("a/x", "req-1", store=store, ledger=ledger, config=test_config)
    finally:
        await stop()

    assert len(result.restored_keys) == 6
    assert store.seen_access_keys[0] == "key-1"
    assert len(set(store.seen_access_keys)) > 1


# ============================================================================
# restore_object
# ============================================================================

@pytest.mark.asyncio
async def test_restore_object_verifies_target_tier(test_config):
    store = FakeObjectStore({"a": {"k": "REDUCED_REDUNDANCY"}})

    assert await restore_object(store, "a", "k", test_config) is True
    assert store.calls == [("change", "a", "k"), ("get", "a", "k")]
    assert store.objects["a"]["k"] == "STANDARD"
