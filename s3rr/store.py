# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Object Store - Listing and storage-class changes.

The engine is written against the ObjectStore protocol. S3ObjectStore is
the aiobotocore implementation: every call (including every listing page)
opens its client with the credentials the cache holds at that moment.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Protocol

import structlog

from s3rr.config import TARGET_TIER
from s3rr.credentials import CredentialCache
from s3rr.exceptions import ObjectStoreError, S3RRError

logger = structlog.get_logger()


@dataclass(frozen=True)
class ObjectSummary:
    """One listed object."""

    key: str
    storage_class: str
    size: int = 0


class ObjectStore(Protocol):
    """Protocol for the object store operations the engine needs."""

    def list_under(self, bucket: str, prefix: str) -> AsyncIterator[List[ObjectSummary]]:
        """
        Yield pages of objects under a prefix, in listing order.

        Raises:
            ObjectStoreError: If a page cannot be fetched
        """
        ...

    async def change_tier(self, bucket: str, key: str, target_tier: str) -> None:
        """
        Rewrite an object in place with a new storage class.

        Raises:
            ObjectStoreError: If the copy fails
        """
        ...

    async def get_tier(self, bucket: str, key: str) -> str:
        """
        Fetch the current storage class of an object.

        Raises:
            ObjectStoreError: If the metadata cannot be fetched
        """
        ...


class S3ObjectStore:
    """ObjectStore backed by S3 through aiobotocore."""

    def __init__(
        self,
        region: str,
        credentials: CredentialCache | None = None,
        session: Any | None = None,
        list_batch_size: int = 1000,
    ):
        if session is None:
            from aiobotocore.session import get_session

            session = get_session()
        self.session = session
        self.region = region
        self.credentials = credentials
        self.list_batch_size = list_batch_size

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[Any]:
        kwargs: Dict[str, Any] = {}
        if self.credentials is not None:
            material = await self.credentials.retrieve()
            kwargs = material.client_kwargs()

        async with self.session.create_client(
            "s3",
            region_name=self.region,
            **kwargs,
        ) as client:
            yield client

    async def list_under(self, bucket: str, prefix: str) -> AsyncIterator[List[ObjectSummary]]:
        params: Dict[str, Any] = {
            "Bucket": bucket,
            "Prefix": prefix,
            "MaxKeys": self.list_batch_size,
        }

        while True:
            try:
                async with self._client() as s3_client:
                    page = await s3_client.list_objects_v2(**params)
            except S3RRError:
                raise
            except Exception as e:
                raise ObjectStoreError(
                    f"Failed to list objects: {e}",
                    details={"bucket": bucket, "prefix": prefix},
                ) from e

            yield [
                ObjectSummary(
                    key=obj["Key"],
                    storage_class=obj.get("StorageClass", TARGET_TIER),
                    size=obj.get("Size", 0),
                )
                for obj in page.get("Contents", [])
            ]

            if not page.get("IsTruncated"):
                return
            params["ContinuationToken"] = page["NextContinuationToken"]

    async def change_tier(self, bucket: str, key: str, target_tier: str) -> None:
        try:
            async with self._client() as s3_client:
                await s3_client.copy_object(
                    Bucket=bucket,
                    Key=key,
                    CopySource={"Bucket": bucket, "Key": key},
                    StorageClass=target_tier,
                    MetadataDirective="COPY",
                )
        except S3RRError:
            raise
        except Exception as e:
            raise ObjectStoreError(
                f"Failed to restore object: {e}",
                details={"bucket": bucket, "key": key, "target_tier": target_tier},
            ) from e

    async def get_tier(self, bucket: str, key: str) -> str:
        try:
            async with self._client() as s3_client:
                response = await s3_client.head_object(Bucket=bucket, Key=key)
        except S3RRError:
            raise
        except Exception as e:
            raise ObjectStoreError(
                f"Failed to fetch object metadata: {e}",
                details={"bucket": bucket, "key": key},
            ) from e

        # S3 omits StorageClass for STANDARD objects
        return response.get("StorageClass", TARGET_TIER)
