"""
Abstract base classes for quote providers in Quote Aggregator.
Defines the interface that all data providers must implement.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from datetime import datetime
import asyncio
import httpx

from ..api.schemas import FinancialRecord, Quote
from ..core.logging_config import create_logger
from ..utils import utc_now

logger = create_logger(__name__)


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str, symbol: Optional[str] = None):
        self.message = message
        self.provider = provider
        self.symbol = symbol
        super().__init__(self.message)


class ProviderTimeoutError(ProviderError):
    """Exception raised when a provider does not answer within its timeout."""
    pass


class RateLimitError(ProviderError):
    """Exception raised when provider rate limit is exceeded."""
    pass


class AuthenticationError(ProviderError):
    """Exception raised when provider authentication fails."""
    pass


class DataNotFoundError(ProviderError):
    """Exception raised when requested data is not found."""
    pass


class QuoteProvider(ABC):
    """Capability interface every upstream quote source implements."""

    def __init__(self, name: str):
        self.name = name

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def connect(self) -> None:
        """Acquire transport resources. No-op by default."""

    async def disconnect(self) -> None:
        """Release transport resources. No-op by default."""

    def is_available(self) -> bool:
        """Whether the provider can be used right now (e.g. credentials configured)."""
        return True

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """
        Get the current quote for a symbol.

        Args:
            symbol: Equity symbol to quote

        Returns:
            Quote, or None when the provider has nothing for the symbol

        Raises:
            ProviderError: If the upstream call fails
        """

    async def fetch_financials(self, symbol: str) -> Optional[FinancialRecord]:
        """Optional capability; providers without financial data return None."""
        return None

    def _create_quote(
        self,
        symbol: str,
        price: Optional[float],
        timestamp: Optional[datetime] = None,
        **kwargs
    ) -> Quote:
        """Create a standardized Quote object tagged with this provider."""
        return Quote(
            symbol=symbol,
            price=price,
            change=kwargs.get('change') or 0.0,
            change_percent=kwargs.get('change_percent') or 0.0,
            volume=kwargs.get('volume'),
            high=kwargs.get('high'),
            low=kwargs.get('low'),
            last_updated=timestamp or utc_now(),
            source=self.name,
        )


class HttpQuoteProvider(QuoteProvider):
    """Quote provider backed by a JSON HTTP API, with rate limiting and retries."""

    def __init__(
        self,
        name: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        retry_count: int = 2,
    ):
        super().__init__(name)
        self.api_key = api_key
        self.base_url = base_url
        self.retry_count = retry_count
        self.client: Optional[httpx.AsyncClient] = None
        self._request_count = 0
        self._window_started = utc_now()
        self._rate_limit_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Initialize HTTP client connection."""
        if self.client is None:
            timeout = httpx.Timeout(30.0, connect=10.0)
            limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)

            self.client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                headers=self._get_default_headers(),
                follow_redirects=True
            )

            logger.debug("Connected to provider", extra={"provider": self.name})

    async def disconnect(self) -> None:
        """Close HTTP client connection."""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.debug("Disconnected from provider", extra={"provider": self.name})

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers for requests."""
        return {
            'User-Agent': 'Quote-Aggregator/1.0.0',
            'Accept': 'application/json',
        }

    def _get_rate_limit(self) -> int:
        """Requests per minute allowed by the upstream API."""
        return 60

    async def _make_request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        symbol: Optional[str] = None,
    ) -> Any:
        """GET a JSON document with rate limiting, retries and error mapping."""
        if not self.client:
            await self.connect()

        await self._apply_rate_limit()

        attempts = self.retry_count + 1
        for attempt in range(attempts):
            try:
                logger.debug("Making request to provider", extra={
                    "provider": self.name,
                    "url": url,
                    "attempt": attempt + 1
                })

                response = await self.client.get(url, params=params)

                if response.status_code == 429:
                    retry_after = int(response.headers.get('Retry-After', 60))
                    logger.warning("Rate limited by provider", extra={
                        "provider": self.name,
                        "retry_after": retry_after
                    })
                    raise RateLimitError(f"Rate limited by {self.name}", self.name, symbol)

                if response.status_code in (401, 403):
                    raise AuthenticationError(f"Authentication failed for {self.name}", self.name, symbol)

                if response.status_code == 404:
                    raise DataNotFoundError(f"No data for {symbol} at {self.name}", self.name, symbol)

                response.raise_for_status()

                try:
                    return response.json()
                except ValueError as e:
                    raise ProviderError(
                        f"Invalid JSON response from {self.name}: {str(e)}",
                        self.name,
                        symbol
                    ) from e

            except (httpx.TimeoutException, httpx.TransportError, httpx.HTTPStatusError) as e:
                logger.warning("HTTP error", extra={
                    "provider": self.name,
                    "error": str(e),
                    "attempt": attempt + 1
                })

                if attempt < attempts - 1:
                    await asyncio.sleep(2 ** attempt)  # Exponential backoff
                    continue
                raise ProviderError(f"HTTP error for {self.name}: {str(e)}", self.name, symbol) from e

        raise ProviderError(f"Max retries exceeded for {self.name}", self.name, symbol)

    async def _apply_rate_limit(self) -> None:
        """Hold the request back when the per-minute budget is spent."""
        async with self._rate_limit_lock:
            now = utc_now()

            if (now - self._window_started).total_seconds() > 60:
                self._request_count = 0
                self._window_started = now

            if self._request_count >= self._get_rate_limit():
                wait_time = 60 - (now - self._window_started).total_seconds()
                if wait_time > 0:
                    logger.debug("Rate limiting request", extra={
                        "provider": self.name,
                        "wait_time": wait_time
                    })
                    await asyncio.sleep(wait_time)
                self._request_count = 0
                self._window_started = utc_now()

            self._request_count += 1
