"""
Quote cache gateways for Quote Aggregator.
Redis-backed cache for deployments and an in-process TTL cache for local runs.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Tuple
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from ..api.schemas import Quote
from ..core.config import CACHE_KEYS, Settings
from ..core.logging_config import create_logger
from ..utils import utc_now

logger = create_logger(__name__)


class QuoteCache(Protocol):
    """Read/write quotes keyed by symbol with a TTL."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def health_check(self) -> bool: ...

    async def get(self, symbol: str) -> Optional[Quote]: ...

    async def set(self, symbol: str, quote: Quote, ttl_seconds: int) -> None: ...

    async def get_many(self, symbols: List[str]) -> Dict[str, Quote]: ...

    async def set_many(self, quotes: Dict[str, Quote], ttl_seconds: int) -> None: ...


class InMemoryQuoteCache:
    """Process-local TTL cache. Expired entries are dropped lazily on read."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._entries: Dict[str, Tuple[Quote, datetime]] = {}

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        self._entries.clear()

    async def health_check(self) -> bool:
        return True

    async def get(self, symbol: str) -> Optional[Quote]:
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        quote, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[symbol]
            return None
        return quote

    async def set(self, symbol: str, quote: Quote, ttl_seconds: int) -> None:
        self._entries[symbol] = (quote, self._clock() + timedelta(seconds=ttl_seconds))

    async def get_many(self, symbols: List[str]) -> Dict[str, Quote]:
        found = {}
        for symbol in symbols:
            quote = await self.get(symbol)
            if quote is not None:
                found[symbol] = quote
        return found

    async def set_many(self, quotes: Dict[str, Quote], ttl_seconds: int) -> None:
        for symbol, quote in quotes.items():
            await self.set(symbol, quote, ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)


class RedisQuoteCache:
    """Redis cache for quotes. Values are the quotes' JSON documents."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self._url = url
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[redis.Redis] = client
        self._connection_lock = asyncio.Lock()

    @staticmethod
    def _key(symbol: str) -> str:
        return CACHE_KEYS['quotes'].format(symbol=symbol)

    async def connect(self) -> None:
        """Initialize Redis connection pool."""
        async with self._connection_lock:
            if self._redis is None:
                try:
                    self._pool = ConnectionPool.from_url(
                        self._url,
                        max_connections=20,
                        retry_on_timeout=True,
                        socket_keepalive=True,
                        health_check_interval=30
                    )
                    self._redis = redis.Redis(connection_pool=self._pool)

                    # Test connection
                    await self._redis.ping()
                    logger.info("Successfully connected to Redis")

                except Exception as e:
                    logger.error("Failed to connect to Redis", extra={"error": str(e)})
                    raise

    async def disconnect(self) -> None:
        """Close Redis connection."""
        async with self._connection_lock:
            if self._redis:
                await self._redis.aclose()
                self._redis = None
            if self._pool:
                await self._pool.disconnect()
                self._pool = None
            logger.info("Disconnected from Redis")

    async def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            if not self._redis:
                return False
            await self._redis.ping()
            return True
        except Exception as e:
            logger.warning("Redis health check failed", extra={"error": str(e)})
            return False

    async def get(self, symbol: str) -> Optional[Quote]:
        found = await self.get_many([symbol])
        return found.get(symbol)

    async def set(self, symbol: str, quote: Quote, ttl_seconds: int) -> None:
        await self.set_many({symbol: quote}, ttl_seconds)

    async def get_many(self, symbols: List[str]) -> Dict[str, Quote]:
        """Get quotes for symbols from cache in one pipeline round trip."""
        if not symbols:
            return {}

        pipe = self._redis.pipeline()
        for symbol in symbols:
            pipe.get(self._key(symbol))
        results = await pipe.execute()

        quotes = {}
        for symbol, raw in zip(symbols, results):
            if not raw:
                continue
            try:
                quotes[symbol] = Quote.model_validate_json(raw)
            except ValueError as e:
                logger.warning("Failed to deserialize quote from cache", extra={
                    "symbol": symbol,
                    "error": str(e)
                })

        logger.debug("Retrieved quotes from cache", extra={
            "requested_symbols": len(symbols),
            "cached_symbols": len(quotes)
        })
        return quotes

    async def set_many(self, quotes: Dict[str, Quote], ttl_seconds: int) -> None:
        """Store quotes in cache with TTL."""
        if not quotes:
            return

        pipe = self._redis.pipeline()
        for symbol, quote in quotes.items():
            pipe.setex(self._key(symbol), ttl_seconds, quote.model_dump_json())
        await pipe.execute()

        logger.debug("Stored quotes in cache", extra={
            "symbols": list(quotes.keys()),
            "ttl": ttl_seconds
        })


def build_quote_cache(config: Settings) -> QuoteCache:
    """Cache gateway selected by ``cache_backend``."""
    if config.cache_backend == "redis":
        return RedisQuoteCache(config.get_redis_url())
    return InMemoryQuoteCache()
