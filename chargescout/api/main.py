"""
FastAPI application factory and main entry point.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chargescout.api.middleware import WideEventMiddleware
from chargescout.api.routes import health, stations
from chargescout.core.config import Settings, get_settings
from chargescout.core.exceptions import (
    Cancelled,
    ChargeScoutException,
    DiscoveryFailed,
    InvalidCoordinate,
)
from chargescout.core.logging import ServiceInfo, configure_logging
from chargescout.services.stations import DiscoveryClient, EnrichmentClient, StationAggregator

logger = structlog.get_logger()


def build_aggregator(settings: Settings, http_client: httpx.AsyncClient) -> StationAggregator:
    """Wire the station pipeline from settings. The only place config reaches the core."""
    discovery = DiscoveryClient(
        settings.backend_proxy_url,
        max_radius_meters=settings.max_radius_meters,
        timeout=settings.request_timeout,
        http_client=http_client,
    )
    enrichment = EnrichmentClient(
        settings.backend_proxy_url,
        provider_prefix=settings.availability_prefix,
        timeout=settings.request_timeout,
        http_client=http_client,
    )
    return StationAggregator(
        discovery,
        enrichment,
        concurrency_limit=settings.enrichment_concurrency,
        default_radius_meters=settings.default_radius_meters,
        default_max_enriched=settings.max_enriched,
    )


def _error_response(status_code: int, exc: ChargeScoutException, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": exc.message,
                "type": error_type,
                "details": exc.details,
            }
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    configure_logging(
        json_logs=not settings.debug,  # JSON in production, console in dev
        log_level="DEBUG" if settings.debug else "INFO",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        logger.info(
            "Starting ChargeScout API",
            version=settings.app_version,
            proxy=settings.backend_proxy_url,
        )
        async with httpx.AsyncClient(timeout=settings.request_timeout) as http_client:
            app.state.aggregator = build_aggregator(settings, http_client)
            yield
        logger.info("Shutting down ChargeScout API")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Nearby EV charging stations with live connector availability",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(WideEventMiddleware, service=ServiceInfo.from_settings(settings))

    app.include_router(health.router, tags=["Health"])
    app.include_router(stations.router, prefix="/api/v1/stations", tags=["Stations"])

    # Exception Handlers
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors"""
        logger.warning("Validation error", url=str(request.url), errors=exc.errors())
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "message": "Validation failed",
                    "type": "validation_error",
                    "details": exc.errors(),
                }
            },
        )

    @app.exception_handler(InvalidCoordinate)
    async def invalid_coordinate_handler(request: Request, exc: InvalidCoordinate):
        logger.info("Invalid coordinate", url=str(request.url), message=exc.message)
        return _error_response(400, exc, "invalid_coordinate")

    @app.exception_handler(DiscoveryFailed)
    async def discovery_failed_handler(request: Request, exc: DiscoveryFailed):
        """Upstream discovery failed: nothing to show."""
        logger.error("Discovery failed", url=str(request.url), message=exc.message, **exc.details)
        return _error_response(502, exc, "discovery_failed")

    @app.exception_handler(Cancelled)
    async def cancelled_handler(request: Request, exc: Cancelled):
        logger.warning("Search timed out", url=str(request.url), message=exc.message)
        return _error_response(504, exc, "search_timeout")

    @app.exception_handler(ChargeScoutException)
    async def app_exception_handler(request: Request, exc: ChargeScoutException):
        """Handle remaining app exceptions"""
        logger.error("App error", url=str(request.url), message=exc.message)
        return _error_response(500, exc, "application_error")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error("Unexpected error", url=str(request.url), error=str(exc), exc_info=True)

        # Don't expose internal details in production
        message = str(exc) if settings.debug else "An unexpected error occurred"

        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "message": message,
                    "type": "internal_server_error",
                }
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "chargescout.api.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
    )
