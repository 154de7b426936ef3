"""
Alpha Vantage quote provider.
Provides stock quotes and annual financial statements.
"""

from typing import Any, Dict, Optional

from .base import HttpQuoteProvider, RateLimitError
from ..api.schemas import FinancialRecord, Quote
from ..core.logging_config import create_logger
from ..utils import utc_now

logger = create_logger(__name__)


def _to_float(value: Any) -> Optional[float]:
    """Alpha Vantage encodes numbers as strings and missing values as 'None'."""
    if value in (None, '', 'None', '-'):
        return None
    try:
        return float(str(value).replace('%', '').strip())
    except ValueError:
        return None


class AlphaVantageProvider(HttpQuoteProvider):
    """Alpha Vantage data provider for stock data."""

    def __init__(self, api_key: Optional[str], retry_count: int = 2):
        super().__init__(
            name="alpha_vantage",
            api_key=api_key,
            base_url="https://www.alphavantage.co/query",
            retry_count=retry_count,
        )

    def _get_rate_limit(self) -> int:
        """Alpha Vantage free tier allows 5 calls per minute."""
        return 4

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def _query(self, function: str, symbol: str) -> Dict[str, Any]:
        data = await self._make_request(
            url=self.base_url,
            params={'function': function, 'symbol': symbol.upper(), 'apikey': self.api_key},
            symbol=symbol,
        )
        # Throttled responses come back as 200 with a "Note" or "Information" body
        if isinstance(data, dict) and ('Note' in data or 'Information' in data):
            raise RateLimitError(f"Rate limited by {self.name}", self.name, symbol)
        return data or {}

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """Get stock quote from Alpha Vantage."""
        data = await self._query('GLOBAL_QUOTE', symbol)
        global_quote = data.get('Global Quote') or {}
        price = _to_float(global_quote.get('05. price'))
        if price is None:
            logger.debug("No quote data", extra={"provider": self.name, "symbol": symbol})
            return None

        volume = _to_float(global_quote.get('06. volume'))

        return self._create_quote(
            symbol=symbol,
            price=price,
            # GLOBAL_QUOTE only carries the trading date; stamp with fetch time
            timestamp=utc_now(),
            change=_to_float(global_quote.get('09. change')),
            change_percent=_to_float(global_quote.get('10. change percent')),
            volume=int(volume) if volume is not None else None,
            high=_to_float(global_quote.get('03. high')),
            low=_to_float(global_quote.get('04. low')),
        )

    async def fetch_financials(self, symbol: str) -> Optional[FinancialRecord]:
        """Latest annual balance sheet merged with the matching income statement."""
        balance = await self._query('BALANCE_SHEET', symbol)
        reports = balance.get('annualReports') or []
        if not reports:
            return None
        sheet = reports[0]

        income = await self._query('INCOME_STATEMENT', symbol)
        statement = next(
            (r for r in income.get('annualReports') or []
             if r.get('fiscalDateEnding') == sheet.get('fiscalDateEnding')),
            {},
        )

        return FinancialRecord(
            symbol=symbol,
            period=sheet.get('fiscalDateEnding'),
            current_assets=_to_float(sheet.get('totalCurrentAssets')),
            short_term_liabilities=_to_float(sheet.get('totalCurrentLiabilities')),
            long_term_liabilities=_to_float(sheet.get('totalNonCurrentLiabilities')),
            cash_and_equivalents=_to_float(sheet.get('cashAndCashEquivalentsAtCarryingValue')),
            financial_debts=_to_float(sheet.get('shortLongTermDebtTotal')),
            total_assets=_to_float(sheet.get('totalAssets')),
            total_liabilities=_to_float(sheet.get('totalLiabilities')),
            equity=_to_float(sheet.get('totalShareholderEquity')),
            paid_capital=_to_float(sheet.get('commonStock')),
            ebitda=_to_float(statement.get('ebitda')),
            net_profit=_to_float(statement.get('netIncome')),
            last_updated=utc_now(),
            source=self.name,
        )
