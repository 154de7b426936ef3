"""
Provider registry for Quote Aggregator.

Holds every configured provider with its static configuration and hands
them out in priority order. Ties on priority keep registration order.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from .base import QuoteProvider
from ..core.config import Settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration of one provider."""
    name: str
    display_name: str
    priority: int
    timeout: float
    retry_count: int = 0
    availability: Optional[Callable[[], bool]] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ValueError("provider name cannot be empty")
        if self.timeout <= 0:
            raise ValueError(f"timeout for provider {self.name!r} must be positive")
        if self.retry_count < 0:
            raise ValueError(f"retry_count for provider {self.name!r} cannot be negative")


@dataclass(frozen=True)
class RegisteredProvider:
    """A provider instance bound to its configuration."""
    config: ProviderConfig
    provider: QuoteProvider
    order: int

    @property
    def name(self) -> str:
        return self.config.name

    def is_available(self) -> bool:
        """Provider is usable now. A failing availability check counts as unavailable."""
        try:
            if self.config.availability is not None and not self.config.availability():
                return False
            return bool(self.provider.is_available())
        except Exception as e:
            logger.warning("Availability check failed", extra={
                "provider": self.name,
                "error": str(e)
            })
            return False


class ProviderRegistry:
    """Central registry of quote providers."""

    def __init__(self):
        self._entries: Dict[str, RegisteredProvider] = {}

    def register(self, provider: QuoteProvider, config: ProviderConfig) -> RegisteredProvider:
        """Register a provider under ``config.name``; names must be unique."""
        if config.name in self._entries:
            raise ValueError(f"provider {config.name!r} is already registered")

        entry = RegisteredProvider(config=config, provider=provider, order=len(self._entries))
        self._entries[config.name] = entry
        logger.debug("Registered provider", extra={
            "provider": config.name,
            "priority": config.priority,
            "timeout": config.timeout
        })
        return entry

    def get(self, name: str) -> Optional[RegisteredProvider]:
        return self._entries.get(name)

    def ordered(self) -> List[RegisteredProvider]:
        """All providers sorted ascending by priority, ties by registration order."""
        return sorted(self._entries.values(), key=lambda e: (e.config.priority, e.order))

    def names(self) -> List[str]:
        return [entry.name for entry in self.ordered()]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegisteredProvider]:
        return iter(self.ordered())

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    async def connect_all(self) -> None:
        """Open provider transports; a provider that fails to connect stays registered."""
        for entry in self._entries.values():
            try:
                await entry.provider.connect()
            except Exception as e:
                logger.error("Failed to initialize provider", extra={
                    "provider": entry.name,
                    "error": str(e)
                })

    async def disconnect_all(self) -> None:
        for entry in self._entries.values():
            try:
                await entry.provider.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting provider", extra={
                    "provider": entry.name,
                    "error": str(e)
                })


def build_default_registry(config: Settings) -> ProviderRegistry:
    """Registry with the bundled Yahoo Finance, Finnhub and Alpha Vantage providers."""
    # Imported here so the registry module stays usable without the HTTP clients loaded
    from .alpha_vantage_provider import AlphaVantageProvider
    from .finnhub_provider import FinnhubProvider
    from .yahoo_provider import YahooFinanceProvider

    registry = ProviderRegistry()
    registry.register(
        YahooFinanceProvider(),
        ProviderConfig(
            name="yahoo",
            display_name="Yahoo Finance",
            priority=config.yahoo_priority,
            timeout=config.yahoo_timeout,
            retry_count=config.provider_retry_count,
        ),
    )
    registry.register(
        FinnhubProvider(config.finnhub_api_key, retry_count=config.provider_retry_count),
        ProviderConfig(
            name="finnhub",
            display_name="Finnhub",
            priority=config.finnhub_priority,
            timeout=config.finnhub_timeout,
            retry_count=config.provider_retry_count,
            availability=lambda: bool(config.finnhub_api_key),
        ),
    )
    registry.register(
        AlphaVantageProvider(config.alpha_vantage_api_key, retry_count=config.provider_retry_count),
        ProviderConfig(
            name="alpha_vantage",
            display_name="Alpha Vantage",
            priority=config.alpha_vantage_priority,
            timeout=config.alpha_vantage_timeout,
            retry_count=config.provider_retry_count,
            availability=lambda: bool(config.alpha_vantage_api_key),
        ),
    )
    return registry
