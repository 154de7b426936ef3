"""
Pydantic schemas for Quote Aggregator Service.
Quote and financial records are serialized with camelCase aliases.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..utils import ensure_utc, utc_now


class Quote(BaseModel):
    """Snapshot of market data for one symbol. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    symbol: str = Field(..., description="Equity symbol/ticker")
    price: Optional[float] = Field(None, description="Last traded price")
    change: float = Field(0.0, description="Absolute price change")
    change_percent: float = Field(0.0, description="Percentage price change")
    volume: Optional[int] = Field(None, description="Trading volume")
    high: Optional[float] = Field(None, description="Day high")
    low: Optional[float] = Field(None, description="Day low")
    last_updated: Optional[datetime] = Field(None, description="Quote timestamp")
    source: Optional[str] = Field(None, description="Provider that produced the quote")

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Validate and normalize symbol."""
        if not v or not v.strip():
            raise ValueError("Symbol cannot be empty")
        return v.strip().upper()

    @field_validator('last_updated')
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class FinancialRecord(BaseModel):
    """Balance sheet and income figures for one reporting period."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    symbol: str
    company_name: Optional[str] = None
    period: Optional[str] = None
    current_assets: Optional[float] = None
    short_term_liabilities: Optional[float] = None
    long_term_liabilities: Optional[float] = None
    cash_and_equivalents: Optional[float] = None
    financial_debts: Optional[float] = None
    total_assets: Optional[float] = None
    total_liabilities: Optional[float] = None
    ebitda: Optional[float] = None
    net_profit: Optional[float] = None
    equity: Optional[float] = None
    paid_capital: Optional[float] = None
    last_updated: Optional[datetime] = None
    source: Optional[str] = None


class ValidationResult(BaseModel):
    """Plausibility score of a single quote."""
    confidence: float = Field(..., ge=0.0, le=1.0, description="Plausibility in [0, 1]")
    is_valid: bool = Field(..., description="True iff confidence > 0.5")
    anomalies: List[str] = Field(default_factory=list, description="Detected anomalies, in check order")
    source: Optional[str] = Field(None, description="Provider the result was computed for")


class ProviderStatus(BaseModel):
    """Circuit breaker and availability state of one provider."""
    name: str = Field(..., description="Display name")
    priority: int = Field(..., description="Priority rank, lower is tried first")
    available: bool = Field(..., description="Current availability")
    failures: int = Field(0, description="Consecutive failures")
    last_success: Optional[datetime] = Field(None, description="Last successful fetch")
    circuit_open: bool = Field(False, description="Whether the breaker is open")
    healthy: bool = Field(..., description="failures below threshold and breaker closed")


class HealthReport(BaseModel):
    """Aggregated provider health."""
    healthy: bool = Field(..., description="At least one provider is healthy")
    cache: bool = Field(True, description="Cache gateway reachable")
    providers: Dict[str, ProviderStatus] = Field(default_factory=dict)
    healthy_provider_count: int = Field(0)
    total_providers: int = Field(0)
    timestamp: datetime = Field(default_factory=utc_now)


class QuoteResponse(BaseModel):
    """Model for bulk quote response."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quotes: Dict[str, Optional[Quote]] = Field(..., description="Quote per requested symbol, null when unavailable")
    total: int = Field(..., description="Number of symbols requested")
    found: int = Field(..., description="Number of symbols with data")
    timestamp: datetime = Field(default_factory=utc_now, description="Response timestamp")


class ErrorResponse(BaseModel):
    """Model for error responses."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")
    details: Optional[Dict[str, str]] = Field(None, description="Additional error details")


class ServiceHealthResponse(BaseModel):
    """Model for the /health endpoint."""
    status: Literal["healthy", "unhealthy"] = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    report: HealthReport


# Type aliases for convenience
QuoteDict = Dict[str, Optional[Quote]]
