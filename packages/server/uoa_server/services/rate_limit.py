"""
Fixed-window rate limiting.

The limiter is a collaborator held by the application context. The in-memory
backend is per-process; the Redis backend is shared across workers.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
import structlog

from uoa_server.core.errors import RateLimited

log = structlog.get_logger()

HOUR = 3600

CREATE_ORG_LIMIT = (5, HOUR)
ADD_ORG_MEMBER_LIMIT = (100, HOUR)
CREATE_TEAM_LIMIT = (50, HOUR)


def create_org_key(domain: str, user_id: str) -> str:
    return f"org:create:{domain}:{user_id}"


def add_org_member_key(domain: str, org_id: str) -> str:
    return f"org:add-member:{domain}:{org_id}"


def create_team_key(domain: str, org_id: str) -> str:
    return f"org:create-team:{domain}:{org_id}"


class RateLimiter(Protocol):
    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        """Count one request against ``key``; False when over the limit."""
        ...

    async def close(self) -> None: ...


class InMemoryRateLimiter:
    """Per-process fixed windows. Expired windows are swept every
    ``sweep_interval`` seconds so idle keys do not accumulate."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._windows: dict[str, tuple[float, int]] = {}  # key -> (expires_at, count)
        self._next_sweep = clock() + sweep_interval

    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self.clock()
        if now >= self._next_sweep:
            self._sweep(now)
        expires_at, count = self._windows.get(key, (now + window_seconds, 0))
        if now >= expires_at:
            expires_at, count = now + window_seconds, 0
        count += 1
        self._windows[key] = (expires_at, count)
        return count <= limit

    def _sweep(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._windows.items() if now >= expires_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval

    async def close(self) -> None:
        self._windows.clear()


class RedisRateLimiter:
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimiter":
        return cls(redis.from_url(url, decode_responses=True))

    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        redis_key = f"rate_limit:{key}"
        # The window and its TTL are created in the same MULTI as the increment,
        # so a counter never exists without an expiry.
        async with self.client.pipeline(transaction=True) as pipe:
            _, count = await pipe.set(redis_key, 0, ex=window_seconds, nx=True).incr(redis_key).execute()
        return count <= limit

    async def close(self) -> None:
        await self.client.aclose()


async def enforce(limiter: RateLimiter, key: str, limit: tuple[int, int]) -> None:
    """Raise RateLimited when ``key`` is over ``limit`` (max, window seconds)."""
    max_requests, window_seconds = limit
    if not await limiter.hit(key, max_requests, window_seconds):
        log.warning("rate_limit.exceeded", key=key, limit=max_requests, window=window_seconds)
        raise RateLimited("rate limit exceeded", key=key)
