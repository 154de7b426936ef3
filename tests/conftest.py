from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from quote_aggregator.api.schemas import FinancialRecord, Quote
from quote_aggregator.providers.base import ProviderError, QuoteProvider
from quote_aggregator.providers.registry import ProviderConfig, ProviderRegistry
from quote_aggregator.services.cache import InMemoryQuoteCache
from quote_aggregator.services.quote_orchestrator import QuoteOrchestrator

START = datetime(2026, 1, 5, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeProvider(QuoteProvider):
    """Scripted provider that records every call."""

    def __init__(
        self,
        name: str,
        prices: Optional[Dict[str, float]] = None,
        fail: bool = False,
        failing_symbols: tuple = (),
        available: bool = True,
        delay: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None,
        financials: Optional[Dict[str, FinancialRecord]] = None,
    ):
        super().__init__(name)
        self.prices = prices or {}
        self.fail = fail
        self.failing_symbols = set(failing_symbols)
        self.available = available
        self.delay = delay
        self.clock = clock or (lambda: START)
        self.financials = financials or {}
        self.calls: List[str] = []
        self.financial_calls: List[str] = []
        self.completed = 0
        self.cancelled = False

    def is_available(self) -> bool:
        return self.available

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        self.calls.append(symbol)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        self.completed += 1
        if self.fail or symbol in self.failing_symbols:
            raise ProviderError(f"{self.name} is down", self.name, symbol)
        if symbol not in self.prices:
            return None
        return Quote(
            symbol=symbol,
            price=self.prices[symbol],
            change=1.0,
            change_percent=0.5,
            volume=1000,
            last_updated=self.clock(),
        )

    async def fetch_financials(self, symbol: str) -> Optional[FinancialRecord]:
        self.financial_calls.append(symbol)
        if self.fail:
            raise ProviderError(f"{self.name} is down", self.name, symbol)
        return self.financials.get(symbol)


def make_registry(*providers: FakeProvider, timeout: float = 1.0) -> ProviderRegistry:
    registry = ProviderRegistry()
    for priority, provider in enumerate(providers, start=1):
        registry.register(
            provider,
            ProviderConfig(
                name=provider.name,
                display_name=provider.name.title(),
                priority=priority,
                timeout=timeout,
            ),
        )
    return registry


def make_orchestrator(*providers: FakeProvider, clock: Optional[FakeClock] = None, cache=None, **kwargs) -> QuoteOrchestrator:
    clock = clock or FakeClock()
    kwargs.setdefault("batch_delay", 0)
    return QuoteOrchestrator(
        make_registry(*providers, timeout=kwargs.pop("timeout", 1.0)),
        cache if cache is not None else InMemoryQuoteCache(clock=clock),
        clock=clock,
        **kwargs,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
