"""
Single-holder leases in Redis.

Each lease is a sorted set ``lease:{name}`` holding at most one token scored
by its expiry, so a crashed holder frees the lease after ttl_sec.
"""
from __future__ import annotations

import logging
import time
import uuid

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


def lease_key(name: str) -> str:
    return f"lease:{name}"


async def try_acquire(r: aioredis.Redis, name: str, *, ttl_sec: int) -> str | None:
    """Return a token if the lease was free, otherwise None. Never waits."""
    key = lease_key(name)
    now_ts = time.time()
    await r.zremrangebyscore(key, "-inf", now_ts)
    if await r.zcard(key):
        return None

    token = uuid.uuid4().hex
    await r.zadd(key, {token: now_ts + ttl_sec}, nx=True)
    # another process may have slipped in between the check and the add
    if await r.zcard(key) > 1:
        await r.zrem(key, token)
        return None
    logger.debug(f"[lease] acquired '{name}' ({token[:8]})")
    return token


async def release(r: aioredis.Redis, name: str, token: str) -> None:
    if not await r.zrem(lease_key(name), token):
        logger.warning(f"[lease] '{name}' token {token[:8]} already expired")
