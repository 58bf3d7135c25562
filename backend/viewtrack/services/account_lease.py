from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis

from viewtrack.errors import AccountBusyError
from viewtrack.services import redis_lease


class AccountLease:
    """No-op lease: overlapping runs on one account are tolerated."""

    @asynccontextmanager
    async def hold(self, account_id: int) -> AsyncIterator[None]:
        yield


class RedisAccountLease(AccountLease):
    """At most one refresh per account across processes."""

    def __init__(self, redis: aioredis.Redis, *, ttl_sec: int):
        self._redis = redis
        self._ttl_sec = ttl_sec

    @asynccontextmanager
    async def hold(self, account_id: int) -> AsyncIterator[None]:
        name = f"refresh-account:{account_id}"
        token = await redis_lease.try_acquire(self._redis, name, ttl_sec=self._ttl_sec)
        if token is None:
            raise AccountBusyError(f"refresh already running for account {account_id}")
        try:
            yield
        finally:
            await redis_lease.release(self._redis, name, token)
