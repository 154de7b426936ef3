"""
Circuit breaker for provider fault tolerance.

Counts consecutive failures per provider. Once the count reaches the
threshold the provider is skipped until the cooldown has elapsed, measured
from its last success, or from the moment it tripped when it has never
succeeded. The reset is time based: the first ``is_open`` check after the
cooldown closes the breaker again, there is no probe request.

Usage:
    breaker = CircuitBreaker(["yahoo", "finnhub"])

    if not breaker.is_open("yahoo"):
        try:
            quote = await provider.fetch_quote(symbol)
            breaker.record_success("yahoo")
        except ProviderError:
            breaker.record_failure("yahoo")

State is mutated only from coroutines running on one event loop, so no
locking is done here.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional

from ..core.logging_config import create_logger
from ..utils import utc_now

logger = create_logger(__name__)

@dataclass
class CircuitState:
    """Failure tracking for a single provider."""
    consecutive_failures: int = 0
    last_success_at: Optional[datetime] = None
    tripped_at: Optional[datetime] = None

class CircuitBreaker:
    """
    Per-provider circuit breaker.

    Args:
        providers: Provider names to create state for up front
        failure_threshold: Consecutive failures that open the circuit
        cooldown_seconds: How long an open circuit keeps the provider out
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        providers: Iterable[str] = (),
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds cannot be negative")

        self.failure_threshold = failure_threshold
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock
        self._states: Dict[str, CircuitState] = {name: CircuitState() for name in providers}

    def _state(self, provider: str) -> CircuitState:
        if provider not in self._states:
            self._states[provider] = CircuitState()
        return self._states[provider]

    def is_open(self, provider: str) -> bool:
        """True while the provider must be skipped. Closes an expired circuit as a side effect."""
        state = self._state(provider)
        if state.consecutive_failures < self.failure_threshold:
            return False

        since = state.last_success_at or state.tripped_at
        if since is not None and self._clock() - since < self.cooldown:
            return True

        logger.info("Circuit breaker closed after cooldown", extra={
            "provider": provider,
            "failures": state.consecutive_failures
        })
        state.consecutive_failures = 0
        state.tripped_at = None
        return False

    def record_success(self, provider: str) -> None:
        state = self._state(provider)
        state.consecutive_failures = 0
        state.tripped_at = None
        state.last_success_at = self._clock()

    def record_failure(self, provider: str) -> None:
        state = self._state(provider)
        state.consecutive_failures += 1

        if state.consecutive_failures >= self.failure_threshold and state.tripped_at is None:
            state.tripped_at = self._clock()
            logger.warning("Circuit breaker tripped", extra={
                "provider": provider,
                "failures": state.consecutive_failures,
                "cooldown_seconds": self.cooldown.total_seconds()
            })

    def get_state(self, provider: str) -> CircuitState:
        """Copy of the provider's current state."""
        state = self._state(provider)
        return CircuitState(
            consecutive_failures=state.consecutive_failures,
            last_success_at=state.last_success_at,
            tripped_at=state.tripped_at,
        )

    def reset(self, provider: str) -> None:
        """Manually close a provider's circuit. Keeps its last success time."""
        state = self._state(provider)
        state.consecutive_failures = 0
        state.tripped_at = None

    def reset_all(self) -> None:
        for name in self._states:
            self.reset(name)

    def providers(self):
        return list(self._states)
