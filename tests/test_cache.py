from __future__ import annotations

import asyncio

from quote_aggregator.api.schemas import Quote
from quote_aggregator.core.config import Settings
from quote_aggregator.services.cache import InMemoryQuoteCache, RedisQuoteCache, build_quote_cache


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.ops = []

    def get(self, key):
        self.ops.append(("get", key))

    def setex(self, key, ttl, value):
        self.ops.append(("setex", key, ttl, value))

    async def execute(self):
        results = []
        for op in self.ops:
            if op[0] == "get":
                results.append(self.redis.store.get(op[1]))
            else:
                _, key, ttl, value = op
                self.redis.store[key] = value.encode()
                self.redis.expirations[key] = ttl
                results.append(True)
        return results


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expirations = {}

    def pipeline(self):
        return FakePipeline(self)

    async def ping(self):
        return True


def test_memory_cache_roundtrip_and_expiry(clock):
    cache = InMemoryQuoteCache(clock=clock)
    quote = Quote(symbol="AAPL", price=190.0, last_updated=clock.now)

    asyncio.run(cache.set("AAPL", quote, 30))
    assert asyncio.run(cache.get("AAPL")) is quote

    clock.advance(30)
    assert asyncio.run(cache.get("AAPL")) is None
    assert len(cache) == 0


def test_memory_cache_bulk(clock):
    cache = InMemoryQuoteCache(clock=clock)
    quotes = {s: Quote(symbol=s, price=1.0) for s in ("A", "B")}

    asyncio.run(cache.set_many(quotes, 30))

    assert asyncio.run(cache.get_many(["A", "B", "C"])) == quotes


def test_redis_cache_roundtrip(clock):
    fake = FakeRedis()
    cache = RedisQuoteCache("redis://unused", client=fake)
    quote = Quote(symbol="AAPL", price=190.25, change=-1.5, change_percent=-0.78, volume=52_000_000,
                  last_updated=clock.now, source="yahoo")

    asyncio.run(cache.set("AAPL", quote, 45))
    restored = asyncio.run(cache.get("AAPL"))

    assert restored == quote
    assert fake.expirations["quotes:AAPL"] == 45


def test_redis_cache_skips_corrupt_entries():
    fake = FakeRedis()
    fake.store["quotes:BAD"] = b"{not json"
    cache = RedisQuoteCache("redis://unused", client=fake)

    assert asyncio.run(cache.get_many(["BAD", "MISSING"])) == {}


def test_redis_health_check():
    assert asyncio.run(RedisQuoteCache("redis://unused", client=FakeRedis()).health_check()) is True
    assert asyncio.run(RedisQuoteCache("redis://unused").health_check()) is False


def test_backend_selection():
    assert isinstance(build_quote_cache(Settings(cache_backend="memory")), InMemoryQuoteCache)
    assert isinstance(build_quote_cache(Settings(cache_backend="REDIS")), RedisQuoteCache)
