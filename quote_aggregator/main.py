"""
Main FastAPI application for Quote Aggregator Service.
Builds the orchestrator at startup and tears it down on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.endpoints import router as api_router
from .api.schemas import ErrorResponse
from .core.config import Settings, settings
from .core.logging_config import create_logger, setup_logging
from .providers.registry import build_default_registry
from .services.cache import build_quote_cache
from .services.quote_orchestrator import QuoteOrchestrator
from .utils import utc_now

logger = create_logger(__name__)


def build_orchestrator(config: Settings) -> QuoteOrchestrator:
    """Wire the default providers and cache backend from settings."""
    return QuoteOrchestrator.from_settings(
        build_default_registry(config),
        build_quote_cache(config),
        config,
    )


def create_app(orchestrator: Optional[QuoteOrchestrator] = None, config: Optional[Settings] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator; built from settings when omitted
        config: Settings to use instead of the environment-loaded ones
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Quote Aggregator Service", extra={
            "version": config.app_version,
            "debug": config.debug
        })

        service = orchestrator or build_orchestrator(config)
        await service.start()
        app.state.orchestrator = service
        app.state.started_at = utc_now()

        logger.info("Quote Aggregator Service started successfully")

        yield  # Application is running

        logger.info("Shutting down Quote Aggregator Service")
        try:
            await service.shutdown()
        except Exception as e:
            logger.error("Error during service shutdown", extra={"error": str(e)})
        app.state.orchestrator = None

    app = FastAPI(
        title=config.app_name,
        description="Multi-provider quote aggregation with circuit breakers and cross-validation",
        version=config.app_version,
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
        openapi_url="/openapi.json" if config.debug else None,
        lifespan=lifespan
    )
    app.state.config = config

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests and responses."""
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("Request failed", extra={
                "method": request.method,
                "url": str(request.url),
                "error": str(e),
                "process_time": round(time.time() - start_time, 4)
            })
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="Internal server error",
                    error_code="INTERNAL_ERROR"
                ).model_dump(mode="json")
            )

        process_time = time.time() - start_time
        logger.info("Request completed", extra={
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "process_time": round(process_time, 4)
        })
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Handle 404 errors with structured response."""
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(
                error=getattr(exc, "detail", None) or "Not found",
                error_code="NOT_FOUND",
                details={
                    "path": request.url.path,
                    "method": request.method
                }
            ).model_dump(mode="json")
        )

    app.include_router(api_router, tags=["Quote API"])
    return app


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    setup_logging(settings)
    uvicorn.run(
        create_app(),
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    run()
