"""
Finnhub quote provider.
Provides stock quotes using the Finnhub REST API.
"""

from typing import Optional

from .base import HttpQuoteProvider
from ..api.schemas import Quote
from ..core.logging_config import create_logger
from ..utils import parse_timestamp

logger = create_logger(__name__)


class FinnhubProvider(HttpQuoteProvider):
    """Finnhub data provider for stock market data."""

    def __init__(self, api_key: Optional[str], retry_count: int = 2):
        super().__init__(
            name="finnhub",
            api_key=api_key,
            base_url="https://finnhub.io/api/v1",
            retry_count=retry_count,
        )

    def _get_rate_limit(self) -> int:
        """Finnhub free tier allows 60 calls per minute."""
        return 50

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """Get a real-time quote from Finnhub."""
        quote_data = await self._make_request(
            url=f"{self.base_url}/quote",
            params={
                "symbol": symbol.upper(),
                "token": self.api_key
            },
            symbol=symbol,
        )

        # Finnhub answers unknown symbols with an all-zero payload
        if not quote_data or not quote_data.get('c'):
            logger.debug("No quote data", extra={"provider": self.name, "symbol": symbol})
            return None

        return self._create_quote(
            symbol=symbol,
            price=float(quote_data['c']),
            timestamp=parse_timestamp(quote_data.get('t')),
            change=quote_data.get('d'),
            change_percent=quote_data.get('dp'),
            high=quote_data.get('h'),
            low=quote_data.get('l'),
        )
