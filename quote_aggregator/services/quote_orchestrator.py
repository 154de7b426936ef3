"""
Quote orchestrator for Quote Aggregator.
Fetches quotes through a priority-ordered provider chain guarded by circuit
breakers, cross-checks the answer against further providers and serves bulk
requests in throttled batches through the quote cache.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..api.schemas import FinancialRecord, HealthReport, ProviderStatus, Quote, QuoteDict
from ..core.config import Settings
from ..core.logging_config import create_logger
from ..providers.base import ProviderTimeoutError
from ..providers.registry import ProviderRegistry, RegisteredProvider
from ..utils import chunked, utc_now
from .cache import QuoteCache
from .circuit_breaker import CircuitBreaker
from .validation import QuoteValidator

logger = create_logger(__name__)


class QuoteOrchestrator:
    """Coordinates quote fetching across the registered providers."""

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: QuoteCache,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        cache_ttl: int = 30,
        batch_size: int = 10,
        batch_delay: float = 1.0,
        cross_validation_limit: int = 2,
        stale_after_seconds: float = 300.0,
        cancel_on_timeout: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        if len(registry) == 0:
            raise ValueError("at least one provider must be registered")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_delay < 0:
            raise ValueError("batch_delay cannot be negative")
        if cross_validation_limit < 0:
            raise ValueError("cross_validation_limit cannot be negative")

        self.registry = registry
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.cross_validation_limit = cross_validation_limit
        self.cancel_on_timeout = cancel_on_timeout
        self.breaker = CircuitBreaker(
            registry.names(),
            failure_threshold=failure_threshold,
            cooldown_seconds=cooldown_seconds,
            clock=clock,
        )
        self.validator = QuoteValidator(stale_after_seconds=stale_after_seconds, clock=clock)
        self._abandoned: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, registry: ProviderRegistry, cache: QuoteCache, config: Settings) -> "QuoteOrchestrator":
        return cls(
            registry,
            cache,
            failure_threshold=config.circuit_breaker_threshold,
            cooldown_seconds=config.circuit_breaker_cooldown,
            cache_ttl=config.quotes_cache_ttl,
            batch_size=config.bulk_batch_size,
            batch_delay=config.bulk_batch_delay,
            cross_validation_limit=config.cross_validation_limit,
            stale_after_seconds=config.stale_after_seconds,
            cancel_on_timeout=config.provider_cancel_on_timeout,
        )

    async def start(self) -> None:
        await self.cache.connect()
        await self.registry.connect_all()
        logger.info("Quote orchestrator started", extra={
            "providers": self.registry.names()
        })

    async def shutdown(self) -> None:
        for task in list(self._abandoned):
            task.cancel()
        if self._abandoned:
            await asyncio.gather(*self._abandoned, return_exceptions=True)
        await self.registry.disconnect_all()
        await self.cache.disconnect()
        logger.info("Quote orchestrator shut down")

    # Single symbol

    async def get_quote(self, symbol: str, use_cache: bool = True) -> Optional[Quote]:
        """
        Quote for one symbol, or None when every provider was skipped or failed.

        Providers are tried strictly one at a time in priority order; the first
        non-empty answer becomes the primary result and is cross-validated.
        """
        if use_cache:
            cached = await self._cache_get(symbol)
            if cached is not None:
                logger.debug("Cache hit", extra={"symbol": symbol})
                return cached

        ordered = self.registry.ordered()
        last_error: Optional[Exception] = None
        primary: Optional[Tuple[Quote, int]] = None

        for index, entry in enumerate(ordered):
            if self.breaker.is_open(entry.name):
                logger.warning("Circuit breaker open, skipping provider", extra={
                    "provider": entry.name,
                    "symbol": symbol
                })
                continue

            if not entry.is_available():
                logger.debug("Provider unavailable, skipping", extra={
                    "provider": entry.name,
                    "symbol": symbol
                })
                continue

            try:
                quote = await self._race(entry, entry.provider.fetch_quote, symbol)
            except Exception as e:
                self.breaker.record_failure(entry.name)
                last_error = e
                logger.warning("Provider failed", extra={
                    "provider": entry.name,
                    "symbol": symbol,
                    "error": str(e),
                    "error_type": type(e).__name__
                })
                continue

            # No data is not a fault; the breaker is left untouched
            if quote is None:
                logger.debug("Provider has no data", extra={
                    "provider": entry.name,
                    "symbol": symbol
                })
                continue

            self.breaker.record_success(entry.name)
            primary = (self._tag(quote, entry.name), index)
            logger.info("Fetched quote", extra={"provider": entry.name, "symbol": symbol})
            break

        if primary is None:
            logger.error("All providers failed", extra={
                "symbol": symbol,
                "last_error": str(last_error) if last_error else None
            })
            return None

        quote, index = primary
        result = await self._cross_validate(symbol, quote, ordered[index + 1:])

        if use_cache:
            await self._cache_set({symbol: result})

        return result

    async def _cross_validate(self, symbol: str, primary: Quote, candidates: List[RegisteredProvider]) -> Quote:
        """Pick the most plausible of the primary quote and up to ``cross_validation_limit`` others."""
        try:
            collected: List[Quote] = [primary]
            attempts = 0

            for entry in candidates:
                if attempts >= self.cross_validation_limit:
                    break
                if self.breaker.is_open(entry.name) or not entry.is_available():
                    continue

                attempts += 1
                try:
                    quote = await self._race(entry, entry.provider.fetch_quote, symbol)
                except Exception as e:
                    logger.warning("Cross-validation fetch failed", extra={
                        "provider": entry.name,
                        "symbol": symbol,
                        "error": str(e)
                    })
                    continue
                if quote is not None:
                    collected.append(self._tag(quote, entry.name))

            results = [self.validator.validate(q, q.source) for q in collected]

            # Strict comparison keeps the primary, then earlier providers, on ties
            best = 0
            for i, result in enumerate(results):
                if result.confidence > results[best].confidence:
                    best = i

            if len(results) > 1:
                logger.info("Cross-validation completed", extra={
                    "symbol": symbol,
                    "sources": len(results),
                    "selected": results[best].source,
                    "confidence": results[best].confidence
                })

            if not results[best].is_valid:
                logger.warning("Low confidence quote", extra={
                    "symbol": symbol,
                    "provider": results[best].source,
                    "confidence": results[best].confidence,
                    "anomalies": results[best].anomalies
                })

            return collected[best]

        except Exception as e:
            logger.error("Cross-validation error, using primary result", extra={
                "symbol": symbol,
                "error": str(e)
            })
            return primary

    # Bulk

    async def get_bulk_quotes(self, symbols: List[str], use_cache: bool = True) -> QuoteDict:
        """
        Quotes for many symbols. Every requested symbol is a key of the result;
        symbols no provider could serve map to None.

        Uncached symbols are fetched in batches of ``batch_size``; symbols within
        a batch run concurrently and batches are separated by ``batch_delay``.
        """
        requested = list(dict.fromkeys(symbols))
        result: QuoteDict = {symbol: None for symbol in requested}

        uncached = requested
        if use_cache and requested:
            cached = await self._cache_get_many(requested)
            result.update(cached)
            uncached = [symbol for symbol in requested if symbol not in cached]

            if not uncached:
                logger.info("All symbols served from cache", extra={"count": len(requested)})
                return result

        logger.info("Fetching symbols from providers", extra={
            "requested": len(requested),
            "uncached": len(uncached)
        })

        fetched: Dict[str, Quote] = {}
        batches = list(chunked(uncached, self.batch_size))

        for number, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(self.get_quote(symbol, use_cache=False) for symbol in batch),
                return_exceptions=True,
            )

            for symbol, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("Unexpected error fetching symbol", extra={
                        "symbol": symbol,
                        "error": str(outcome)
                    })
                elif outcome is not None:
                    fetched[symbol] = outcome

            # Throttle aggregate upstream request volume between batches
            if number < len(batches) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        result.update(fetched)

        if use_cache and fetched:
            await self._cache_set(fetched)

        logger.info("Bulk fetch completed", extra={
            "requested": len(requested),
            "successful": sum(1 for quote in result.values() if quote is not None)
        })
        return result

    # Financials

    async def get_financials(self, symbol: str) -> Optional[FinancialRecord]:
        """First financial record offered by a provider, in priority order."""
        for entry in self.registry.ordered():
            if self.breaker.is_open(entry.name) or not entry.is_available():
                continue

            try:
                record = await self._race(entry, entry.provider.fetch_financials, symbol)
            except Exception as e:
                self.breaker.record_failure(entry.name)
                logger.warning("Provider failed fetching financials", extra={
                    "provider": entry.name,
                    "symbol": symbol,
                    "error": str(e)
                })
                continue

            if record is not None:
                self.breaker.record_success(entry.name)
                return record.model_copy(update={"source": entry.name})

        logger.info("No provider returned financial data", extra={"symbol": symbol})
        return None

    # Status

    def get_provider_status(self) -> Dict[str, ProviderStatus]:
        status = {}
        for entry in self.registry.ordered():
            circuit_open = self.breaker.is_open(entry.name)
            state = self.breaker.get_state(entry.name)
            status[entry.name] = ProviderStatus(
                name=entry.config.display_name,
                priority=entry.config.priority,
                available=entry.is_available(),
                failures=state.consecutive_failures,
                last_success=state.last_success_at,
                circuit_open=circuit_open,
                healthy=state.consecutive_failures < self.breaker.failure_threshold and not circuit_open,
            )
        return status

    async def health_check(self) -> HealthReport:
        providers = self.get_provider_status()
        healthy_count = sum(1 for status in providers.values() if status.healthy)

        try:
            cache_healthy = await self.cache.health_check()
        except Exception as e:
            logger.warning("Cache health check failed", extra={"error": str(e)})
            cache_healthy = False

        return HealthReport(
            healthy=healthy_count > 0,
            cache=cache_healthy,
            providers=providers,
            healthy_provider_count=healthy_count,
            total_providers=len(providers),
        )

    def reset_provider(self, name: str) -> bool:
        """Manually close a provider's circuit. False for unknown providers."""
        if name not in self.registry:
            return False
        self.breaker.reset(name)
        logger.info("Circuit breaker reset", extra={"provider": name})
        return True

    # Helpers

    async def _race(
        self,
        entry: RegisteredProvider,
        call: Callable[[str], Awaitable[Any]],
        symbol: str,
    ) -> Any:
        """Run ``call(symbol)`` against the provider's timeout."""
        task = asyncio.ensure_future(call(symbol))
        try:
            done, _ = await asyncio.wait({task}, timeout=entry.config.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        if self.cancel_on_timeout:
            task.cancel()
        else:
            # Left running; its outcome is dropped when it settles
            self._abandoned.add(task)
            task.add_done_callback(self._drop_abandoned)

        raise ProviderTimeoutError(
            f"{entry.name} did not answer within {entry.config.timeout}s",
            entry.name,
            symbol,
        )

    def _drop_abandoned(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Abandoned provider call failed", extra={"error": str(task.exception())})

    @staticmethod
    def _tag(quote: Quote, provider: str) -> Quote:
        if quote.source == provider:
            return quote
        return quote.model_copy(update={"source": provider})

    async def _cache_get(self, symbol: str) -> Optional[Quote]:
        try:
            return await self.cache.get(symbol)
        except Exception as e:
            logger.warning("Cache read failed", extra={"symbol": symbol, "error": str(e)})
            return None

    async def _cache_get_many(self, symbols: List[str]) -> Dict[str, Quote]:
        try:
            return await self.cache.get_many(symbols)
        except Exception as e:
            logger.warning("Bulk cache read failed", extra={"count": len(symbols), "error": str(e)})
            return {}

    async def _cache_set(self, quotes: Dict[str, Quote]) -> None:
        try:
            await self.cache.set_many(quotes, self.cache_ttl)
        except Exception as e:
            logger.warning("Cache write failed", extra={"symbols": list(quotes), "error": str(e)})
