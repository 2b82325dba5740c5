"""
Rate limiter tests.
"""

from __future__ import annotations

import pytest

from uoa_server.core.errors import RateLimited
from uoa_server.services.rate_limit import (
    CREATE_ORG_LIMIT,
    InMemoryRateLimiter,
    RedisRateLimiter,
    create_org_key,
    enforce,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakePipeline:
    """Queues commands and applies them together on execute()."""

    def __init__(self, redis: "FakeRedis", transaction: bool):
        self.redis = redis
        self.transaction = transaction
        self.queued: list[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.queued.clear()

    def set(self, key, value, ex=None, nx=False):
        self.queued.append(("set", key, value, ex, nx))
        return self

    def incr(self, key):
        self.queued.append(("incr", key))
        return self

    async def execute(self):
        results = [self.redis.apply(*command) for command in self.queued]
        self.redis.executed.append((self.transaction, [command[0] for command in self.queued]))
        self.queued.clear()
        return results


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the limiter."""

    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.executed: list[tuple[bool, list[str]]] = []
        self.closed = False

    def pipeline(self, transaction=True):
        return FakePipeline(self, transaction)

    def apply(self, name, key, *args):
        if name == "set":
            value, ex, nx = args
            if nx and key in self.values:
                return None
            self.values[key] = int(value)
            if ex is not None:
                self.ttls[key] = ex
            return True
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def aclose(self):
        self.closed = True


class TestInMemory:
    async def test_window(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        assert await limiter.hit("k", 2, 60)
        assert await limiter.hit("k", 2, 60)
        assert not await limiter.hit("k", 2, 60)

        clock.now += 60
        assert await limiter.hit("k", 2, 60)

    async def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        assert await limiter.hit("a", 1, 60)
        assert await limiter.hit("b", 1, 60)
        assert not await limiter.hit("a", 1, 60)

    async def test_expired_windows_are_evicted(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock, sweep_interval=60)
        for i in range(10):
            await limiter.hit(f"idle-{i}", 5, 30)
        assert len(limiter._windows) == 10

        clock.now += 61
        await limiter.hit("fresh", 5, 30)
        assert list(limiter._windows) == ["fresh"]

    async def test_sweep_keeps_live_windows(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock, sweep_interval=60)
        await limiter.hit("short", 1, 30)
        assert await limiter.hit("long", 1, 3600)

        clock.now += 61
        await limiter.hit("other", 1, 30)
        assert set(limiter._windows) == {"long", "other"}
        assert not await limiter.hit("long", 1, 3600)

    async def test_enforce(self):
        limiter = InMemoryRateLimiter(clock=FakeClock())
        key = create_org_key("app.example.com", "user-1")
        max_requests, _ = CREATE_ORG_LIMIT
        for _ in range(max_requests):
            await enforce(limiter, key, CREATE_ORG_LIMIT)
        with pytest.raises(RateLimited):
            await enforce(limiter, key, CREATE_ORG_LIMIT)


class TestRedis:
    async def test_counts_and_expiry(self):
        fake = FakeRedis()
        limiter = RedisRateLimiter(fake)
        assert await limiter.hit("k", 1, 3600)
        assert not await limiter.hit("k", 1, 3600)
        assert fake.values == {"rate_limit:k": 2}
        assert fake.ttls == {"rate_limit:k": 3600}

        await limiter.close()
        assert fake.closed

    async def test_expiry_is_set_in_the_same_transaction(self):
        fake = FakeRedis()
        limiter = RedisRateLimiter(fake)
        await limiter.hit("k", 5, 60)
        await limiter.hit("k", 5, 60)
        assert fake.executed == [(True, ["set", "incr"]), (True, ["set", "incr"])]

    async def test_existing_window_keeps_its_ttl(self):
        fake = FakeRedis()
        fake.values["rate_limit:k"] = 3
        fake.ttls["rate_limit:k"] = 10
        limiter = RedisRateLimiter(fake)
        assert not await limiter.hit("k", 3, 3600)
        assert fake.values["rate_limit:k"] == 4
        assert fake.ttls["rate_limit:k"] == 10
