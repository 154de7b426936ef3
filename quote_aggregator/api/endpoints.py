"""
FastAPI endpoints for Quote Aggregator Service.
The orchestrator is created once at startup and injected per request.
"""

from typing import Dict, List
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .schemas import (
    FinancialRecord, ProviderStatus, Quote, QuoteResponse, ServiceHealthResponse
)
from ..core.config import Settings, settings
from ..core.logging_config import create_logger
from ..services.quote_orchestrator import QuoteOrchestrator
from ..utils import utc_now

logger = create_logger(__name__)

# Create API router
router = APIRouter()


def get_orchestrator(request: Request) -> QuoteOrchestrator:
    """Dependency returning the orchestrator built in the application lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return orchestrator


def get_settings(request: Request) -> Settings:
    """Dependency returning the settings the application was created with."""
    return getattr(request.app.state, "config", None) or settings


def parse_symbols(symbols: str) -> List[str]:
    """Split a comma-separated symbol list, normalize case and drop duplicates."""
    seen = set()
    unique_symbols = []
    for symbol in symbols.split(','):
        symbol = symbol.strip().upper()
        if symbol and symbol not in seen:
            seen.add(symbol)
            unique_symbols.append(symbol)
    return unique_symbols


@router.get("/health", response_model=ServiceHealthResponse)
async def health_check(
    request: Request,
    orchestrator: QuoteOrchestrator = Depends(get_orchestrator),
    config: Settings = Depends(get_settings),
):
    """Overall service health derived from provider circuit state."""
    report = await orchestrator.health_check()
    started_at = getattr(request.app.state, "started_at", None) or utc_now()

    return ServiceHealthResponse(
        status="healthy" if report.healthy else "unhealthy",
        version=config.app_version,
        uptime_seconds=(utc_now() - started_at).total_seconds(),
        report=report,
    )


@router.get("/v1/quotes/{symbol}", response_model=Quote)
async def get_quote(
    symbol: str,
    use_cache: bool = Query(True, description="Serve from cache when possible"),
    orchestrator: QuoteOrchestrator = Depends(get_orchestrator),
):
    """Get the current quote for one symbol."""
    symbol = symbol.strip().upper()
    quote = await orchestrator.get_quote(symbol, use_cache=use_cache)
    if quote is None:
        raise HTTPException(status_code=404, detail=f"No provider returned data for {symbol}")
    return quote


@router.get("/v1/quotes", response_model=QuoteResponse)
async def get_quotes(
    symbols: str = Query(
        ...,
        description="Comma-separated list of symbols to get quotes for",
        examples=["AAPL,MSFT,GOOGL"]
    ),
    use_cache: bool = Query(True, description="Serve from cache when possible"),
    orchestrator: QuoteOrchestrator = Depends(get_orchestrator),
    config: Settings = Depends(get_settings),
):
    """Get quotes for several symbols; unknown symbols map to null."""
    symbol_list = parse_symbols(symbols)

    if not symbol_list:
        raise HTTPException(status_code=400, detail="At least one valid symbol is required")

    if len(symbol_list) > config.max_bulk_symbols:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {config.max_bulk_symbols} symbols allowed per request"
        )

    logger.info("Quotes request received", extra={
        "symbols": symbol_list,
        "count": len(symbol_list)
    })

    quotes = await orchestrator.get_bulk_quotes(symbol_list, use_cache=use_cache)

    return QuoteResponse(
        quotes=quotes,
        total=len(quotes),
        found=sum(1 for quote in quotes.values() if quote is not None),
    )


@router.get("/v1/financials/{symbol}", response_model=FinancialRecord)
async def get_financials(symbol: str, orchestrator: QuoteOrchestrator = Depends(get_orchestrator)):
    """Latest financial statement figures for one symbol."""
    symbol = symbol.strip().upper()
    record = await orchestrator.get_financials(symbol)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No financial data for {symbol}")
    return record


@router.get("/v1/providers/status", response_model=Dict[str, ProviderStatus])
async def get_provider_status(orchestrator: QuoteOrchestrator = Depends(get_orchestrator)):
    """Per-provider availability and circuit breaker state."""
    return orchestrator.get_provider_status()


@router.post("/v1/providers/{name}/reset", response_model=ProviderStatus)
async def reset_provider(name: str, orchestrator: QuoteOrchestrator = Depends(get_orchestrator)):
    """Manually close a provider's circuit breaker."""
    if not orchestrator.reset_provider(name):
        raise HTTPException(status_code=404, detail=f"Unknown provider {name}")
    return orchestrator.get_provider_status()[name]
