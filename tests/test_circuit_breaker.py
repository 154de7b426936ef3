"""
Tests for the per-provider circuit breaker.

Verifies that:
- The circuit opens after the configured number of consecutive failures
- A success resets the failure count and stamps the success time
- The circuit closes by itself once the cooldown has elapsed
"""
from __future__ import annotations

import pytest

from quote_aggregator.services.circuit_breaker import CircuitBreaker


def _trip(breaker: CircuitBreaker, name: str, times: int) -> None:
    for _ in range(times):
        breaker.record_failure(name)


def test_new_provider_is_closed(clock):
    breaker = CircuitBreaker(["yahoo"], clock=clock)
    state = breaker.get_state("yahoo")

    assert breaker.is_open("yahoo") is False
    assert state.consecutive_failures == 0
    assert state.last_success_at is None


def test_opens_at_threshold(clock):
    breaker = CircuitBreaker(["yahoo"], failure_threshold=5, clock=clock)

    _trip(breaker, "yahoo", 4)
    assert breaker.is_open("yahoo") is False

    breaker.record_failure("yahoo")
    assert breaker.is_open("yahoo") is True


def test_success_resets_failures(clock):
    breaker = CircuitBreaker(["yahoo"], clock=clock)
    _trip(breaker, "yahoo", 3)

    breaker.record_success("yahoo")
    state = breaker.get_state("yahoo")

    assert state.consecutive_failures == 0
    assert state.last_success_at == clock.now


def test_failure_keeps_last_success_time(clock):
    breaker = CircuitBreaker(["yahoo"], clock=clock)
    breaker.record_success("yahoo")
    stamped = clock.now

    clock.advance(5)
    breaker.record_failure("yahoo")

    assert breaker.get_state("yahoo").last_success_at == stamped


def test_stays_open_during_cooldown(clock):
    breaker = CircuitBreaker(["yahoo"], failure_threshold=5, cooldown_seconds=60, clock=clock)
    _trip(breaker, "yahoo", 5)

    clock.advance(59)
    assert breaker.is_open("yahoo") is True
    assert breaker.get_state("yahoo").consecutive_failures == 5


def test_auto_resets_after_cooldown(clock):
    breaker = CircuitBreaker(["yahoo"], failure_threshold=5, cooldown_seconds=60, clock=clock)
    _trip(breaker, "yahoo", 5)

    clock.advance(60)

    assert breaker.is_open("yahoo") is False
    assert breaker.get_state("yahoo").consecutive_failures == 0


def test_cooldown_counts_from_recent_success(clock):
    breaker = CircuitBreaker(["yahoo"], failure_threshold=2, cooldown_seconds=60, clock=clock)
    _trip(breaker, "yahoo", 1)
    clock.advance(10)
    breaker.record_success("yahoo")
    _trip(breaker, "yahoo", 2)

    clock.advance(30)
    assert breaker.is_open("yahoo") is True
    clock.advance(31)
    assert breaker.is_open("yahoo") is False


def test_cooldown_already_elapsed_since_old_success(clock):
    breaker = CircuitBreaker(["yahoo"], failure_threshold=5, cooldown_seconds=60, clock=clock)
    breaker.record_success("yahoo")

    clock.advance(3600)
    _trip(breaker, "yahoo", 5)

    assert breaker.is_open("yahoo") is False
    assert breaker.get_state("yahoo").consecutive_failures == 0


def test_never_succeeded_counts_from_trip(clock):
    breaker = CircuitBreaker(["yahoo"], failure_threshold=3, cooldown_seconds=60, clock=clock)
    clock.advance(3600)
    _trip(breaker, "yahoo", 3)

    clock.advance(59)
    assert breaker.is_open("yahoo") is True
    clock.advance(1)
    assert breaker.is_open("yahoo") is False


def test_manual_reset(clock):
    breaker = CircuitBreaker(["yahoo", "finnhub"], failure_threshold=1, clock=clock)
    breaker.record_failure("yahoo")
    breaker.record_failure("finnhub")

    breaker.reset("yahoo")
    assert breaker.is_open("yahoo") is False
    assert breaker.is_open("finnhub") is True

    breaker.reset_all()
    assert breaker.is_open("finnhub") is False


def test_unknown_provider_gets_state_lazily(clock):
    breaker = CircuitBreaker(clock=clock)
    breaker.record_failure("investing")

    assert breaker.get_state("investing").consecutive_failures == 1
    assert "investing" in breaker.providers()


def test_rejects_invalid_threshold():
    with pytest.raises(ValueError):
        CircuitBreaker(failure_threshold=0)
