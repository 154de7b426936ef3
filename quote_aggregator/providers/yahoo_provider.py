"""
Yahoo Finance quote provider.
Wraps the synchronous yfinance client in a thread pool.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional
import yfinance as yf

from .base import ProviderError, QuoteProvider
from ..api.schemas import Quote
from ..core.logging_config import create_logger
from ..utils import parse_timestamp

logger = create_logger(__name__)


class YahooFinanceProvider(QuoteProvider):
    """Yahoo Finance data provider."""

    def __init__(self, max_workers: int = 4):
        super().__init__(name="yahoo")
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    async def connect(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers)

    async def disconnect(self) -> None:
        """Close connections and clean up resources."""
        if self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """Get a real-time quote from Yahoo Finance."""
        await self.connect()
        loop = asyncio.get_running_loop()

        try:
            info = await loop.run_in_executor(self._executor, self._fetch_info_sync, symbol.upper().strip())
        except Exception as e:
            raise ProviderError(f"Failed to fetch quote: {str(e)}", self.name, symbol) from e

        quote = self._quote_from_info(symbol, info)
        if quote is None:
            logger.debug("No price data", extra={"provider": self.name, "symbol": symbol})
        return quote

    def _fetch_info_sync(self, symbol: str) -> Dict[str, Any]:
        """Synchronous function to fetch ticker info using yfinance."""
        return yf.Ticker(symbol).info or {}

    def _quote_from_info(self, symbol: str, info: Dict[str, Any]) -> Optional[Quote]:
        current_price = (
            info.get('currentPrice') or
            info.get('regularMarketPrice') or
            info.get('bid')
        )
        if current_price is None:
            return None

        previous_close = info.get('previousClose') or info.get('regularMarketPreviousClose')
        change = None
        change_percent = None
        if previous_close and previous_close > 0:
            change = current_price - previous_close
            change_percent = (change / previous_close) * 100

        return self._create_quote(
            symbol=symbol,
            price=float(current_price),
            timestamp=parse_timestamp(info.get('regularMarketTime')),
            change=change,
            change_percent=change_percent,
            volume=info.get('volume') or info.get('regularMarketVolume'),
            high=info.get('dayHigh') or info.get('regularMarketDayHigh'),
            low=info.get('dayLow') or info.get('regularMarketDayLow'),
        )
