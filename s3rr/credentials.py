# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR Credential Cache - Short-lived credentials shared by all restorers.

Credentials are assumed once at startup and then replaced in place by a
background refresh task. Path restorers never keep their own copy; they
call retrieve() before every object store call, so a refresh is picked up
by in-flight and future calls alike.

A failed refresh keeps the previous material (availability over
freshness). The refresh task is cancellable and joined on shutdown.
"""

import asyncio
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Protocol

import structlog

from s3rr.config import DEFAULT_CREDENTIAL_REFRESH_SECONDS
from s3rr.exceptions import CredentialError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CredentialMaterial:
    """Access key, secret and session token plus expiry."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    expiration: datetime | None = None

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for an aiobotocore create_client call."""
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }

    def expires_within(self, seconds: float) -> bool:
        if self.expiration is None:
            return False
        return self.expiration - datetime.now(UTC) <= timedelta(seconds=seconds)

    def __repr__(self) -> str:
        return (
            f"CredentialMaterial(access_key_id={self.access_key_id!r}, "
            f"expiration={self.expiration!r})"
        )


class CredentialSource(Protocol):
    """Protocol for producing short-lived credentials."""

    async def assume_role(self, role_arn: str, region: str) -> CredentialMaterial:
        """
        Assume a role.

        Raises:
            CredentialError: If the role cannot be assumed
        """
        ...


class StsCredentialSource:
    """CredentialSource backed by AWS STS AssumeRole (aiobotocore)."""

    def __init__(
        self,
        session: Any | None = None,
        duration_seconds: int = 3600,
        session_name_prefix: str = "s3rr",
    ):
        if session is None:
            from aiobotocore.session import get_session

            session = get_session()
        self.session = session
        self.duration_seconds = duration_seconds
        self.session_name_prefix = session_name_prefix

    async def assume_role(self, role_arn: str, region: str) -> CredentialMaterial:
        session_name = f"{self.session_name_prefix}-{secrets.token_hex(4)}"
        try:
            async with self.session.create_client("sts", region_name=region) as sts:
                response = await sts.assume_role(
                    RoleArn=role_arn,
                    RoleSessionName=session_name,
                    DurationSeconds=self.duration_seconds,
                )
        except Exception as e:
            raise CredentialError(
                f"Failed to assume role: {e}",
                details={"role_arn": role_arn, "region": region},
            ) from e

        creds = response["Credentials"]
        return CredentialMaterial(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds.get("SessionToken"),
            expiration=creds.get("Expiration"),
        )


class ReadWriteLock:
    """asyncio lock allowing many readers or one writer, writers first."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
                # Readers blocked on a cancelled writer must re-check
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class CredentialCache:
    """
    Holds the current CredentialMaterial for one role.

    Owned by the coordinator and passed to the object store; nothing else
    keeps a copy of the material.
    """

    def __init__(self, source: CredentialSource, role_arn: str, region: str):
        self.source = source
        self.role_arn = role_arn
        self.region = region
        self._material: CredentialMaterial | None = None
        self._lock = ReadWriteLock()
        self.refresh_count = 0

    async def initialize(self) -> CredentialMaterial:
        """
        Assume the role for the first time.

        Raises:
            CredentialError: If the initial assumption fails
        """
        material = await self.source.assume_role(self.role_arn, self.region)
        await self.update(material)
        logger.info(
            "credentials_initialized",
            role_arn=self.role_arn,
            expiration=material.expiration.isoformat() if material.expiration else None,
        )
        return material

    async def retrieve(self) -> CredentialMaterial:
        """
        Return the current material.

        Raises:
            CredentialError: If the cache was never initialized
        """
        async with self._lock.read():
            material = self._material
        if material is None:
            raise CredentialError(
                "Credentials have not been initialized",
                details={"role_arn": self.role_arn},
            )
        return material

    async def update(self, material: CredentialMaterial) -> None:
        async with self._lock.write():
            self._material = material

    async def refresh_once(self) -> bool:
        """
        Re-assume the role and swap in the new material.

        Returns:
            True on success; on failure the previous material is kept
        """
        try:
            material = await self.source.assume_role(self.role_arn, self.region)
        except Exception as e:
            logger.error(
                "credentials_refresh_failed",
                role_arn=self.role_arn,
                error=str(e),
            )
            return False

        await self.update(material)
        self.refresh_count += 1
        logger.info(
            "credentials_refreshed",
            role_arn=self.role_arn,
            refresh_count=self.refresh_count,
        )
        return True

    def start_refresh(
        self,
        interval_seconds: float = DEFAULT_CREDENTIAL_REFRESH_SECONDS,
    ) -> Callable[[], Awaitable[None]]:
        """
        Start the periodic refresh task and return a stop function.

        The stop function cancels the task and waits for it to finish.
        """
        stop_event = asyncio.Event()
        task = asyncio.create_task(self._refresh_loop(interval_seconds, stop_event))

        logger.info("credentials_refresh_started", interval_seconds=interval_seconds)

        async def stop() -> None:
            stop_event.set()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("credentials_refresh_stopped")

        return stop

    async def _refresh_loop(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
                return
            except asyncio.TimeoutError:
                pass
            await self.refresh_once()
