from __future__ import annotations

import asyncio
import json

import pytest

from conftest import FakeProvider, make_orchestrator
from quote_aggregator.api.schemas import FinancialRecord
from quote_aggregator.providers.registry import ProviderRegistry
from quote_aggregator.services.cache import InMemoryQuoteCache
from quote_aggregator.services.quote_orchestrator import QuoteOrchestrator


def test_status_snapshot(clock):
    ok = FakeProvider("ok", prices={"AAPL": 190.0}, clock=clock)
    down = FakeProvider("down", fail=True)
    offline = FakeProvider("offline", available=False)
    orchestrator = make_orchestrator(down, ok, offline, clock=clock, failure_threshold=2)

    asyncio.run(orchestrator.get_quote("AAPL", use_cache=False))
    asyncio.run(orchestrator.get_quote("AAPL", use_cache=False))

    status = orchestrator.get_provider_status()

    assert list(status) == ["down", "ok", "offline"]
    assert status["down"].failures == 2
    assert status["down"].circuit_open is True
    assert status["down"].healthy is False
    assert status["ok"].name == "Ok"
    assert status["ok"].priority == 2
    assert status["ok"].last_success == clock.now
    assert status["ok"].healthy is True
    assert status["offline"].available is False
    assert status["offline"].last_success is None


def test_status_is_json_serializable(clock):
    orchestrator = make_orchestrator(FakeProvider("ok", prices={"A": 1.0}, clock=clock), clock=clock)
    asyncio.run(orchestrator.get_quote("A"))

    payload = {name: s.model_dump(mode="json") for name, s in orchestrator.get_provider_status().items()}

    assert json.loads(json.dumps(payload))["ok"]["last_success"].startswith("2026-01-05T15:30:00")


def test_status_reflects_auto_reset(clock):
    down = FakeProvider("down", fail=True)
    orchestrator = make_orchestrator(down, clock=clock, failure_threshold=1, cooldown_seconds=60)
    asyncio.run(orchestrator.get_quote("A"))

    assert orchestrator.get_provider_status()["down"].healthy is False
    clock.advance(60)

    status = orchestrator.get_provider_status()["down"]
    assert status.circuit_open is False
    assert status.failures == 0
    assert status.healthy is True


def test_health_check(clock):
    down = FakeProvider("down", fail=True)
    ok = FakeProvider("ok", prices={"A": 1.0}, clock=clock)
    orchestrator = make_orchestrator(down, ok, clock=clock, failure_threshold=1)
    asyncio.run(orchestrator.get_quote("A"))

    report = asyncio.run(orchestrator.health_check())

    assert report.healthy is True
    assert report.cache is True
    assert report.healthy_provider_count == 1
    assert report.total_providers == 2
    assert set(report.providers) == {"down", "ok"}


def test_unhealthy_when_every_breaker_is_open(clock):
    a = FakeProvider("a", fail=True)
    b = FakeProvider("b", fail=True)
    orchestrator = make_orchestrator(a, b, clock=clock, failure_threshold=1)
    asyncio.run(orchestrator.get_quote("A"))

    report = asyncio.run(orchestrator.health_check())

    assert report.healthy is False
    assert report.healthy_provider_count == 0


def test_reset_provider(clock):
    down = FakeProvider("down", fail=True)
    orchestrator = make_orchestrator(down, clock=clock, failure_threshold=1)
    asyncio.run(orchestrator.get_quote("A"))

    assert orchestrator.reset_provider("down") is True
    assert orchestrator.get_provider_status()["down"].circuit_open is False
    assert orchestrator.reset_provider("nope") is False


def test_financials_fall_back_by_priority(clock):
    record = FinancialRecord(symbol="AAPL", period="2025-09-30", total_assets=364.98e9, net_profit=93.7e9)
    broken = FakeProvider("broken", fail=True)
    empty = FakeProvider("empty")
    rich = FakeProvider("rich", financials={"AAPL": record})
    orchestrator = make_orchestrator(broken, empty, rich, clock=clock)

    result = asyncio.run(orchestrator.get_financials("AAPL"))

    assert result.total_assets == record.total_assets
    assert result.source == "rich"
    assert broken.financial_calls == ["AAPL"]
    assert empty.financial_calls == ["AAPL"]
    assert orchestrator.breaker.get_state("broken").consecutive_failures == 1
    assert orchestrator.breaker.get_state("empty").consecutive_failures == 0


def test_financials_missing_everywhere(clock):
    orchestrator = make_orchestrator(FakeProvider("a"), FakeProvider("b"), clock=clock)
    assert asyncio.run(orchestrator.get_financials("AAPL")) is None


def test_orchestrator_needs_providers():
    with pytest.raises(ValueError):
        QuoteOrchestrator(ProviderRegistry(), InMemoryQuoteCache())


def test_orchestrator_rejects_bad_batch_size(clock):
    with pytest.raises(ValueError):
        make_orchestrator(FakeProvider("a"), clock=clock, batch_size=0)
