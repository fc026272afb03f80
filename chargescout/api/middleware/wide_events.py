"""
Request event middleware.

Starts one search event per request, stamped with the service identity
from Settings. Requests to the station search endpoints are seeded with
the raw search parameters up front; the route then records the resolved
coordinate and the outcome counters via `record_search`.

    app.add_middleware(WideEventMiddleware, service=ServiceInfo.from_settings(settings))
"""

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from chargescout.core.logging import (
    ServiceInfo,
    emit_wide_event,
    enrich_event,
    finalize_request_event,
    init_request_event,
)
from chargescout.core.models import AggregationResult, Coordinate

SEARCH_PATH_PREFIX = "/api/v1/stations"
SEARCH_PARAMS = ("lat", "lon", "q", "radius", "max_enriched")


class WideEventMiddleware(BaseHTTPMiddleware):
    """Emits one canonical log line per request."""

    SKIP_PATHS = {"/api/health", "/favicon.ico"}

    def __init__(self, app: ASGIApp, service: ServiceInfo):
        super().__init__(app)
        self.service = service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        init_request_event(
            self.service,
            method=request.method,
            path=request.url.path,
            request_id=request.headers.get("x-request-id"),
            client_ip=client_ip(request),
            search=requested_search(request),
        )

        error: Exception | None = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as e:
            error = e
            raise
        finally:
            emit_wide_event(finalize_request_event(status_code, error))


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def requested_search(request: Request) -> dict[str, Any] | None:
    """Raw search parameters as sent, for station search paths only."""
    if not request.url.path.startswith(SEARCH_PATH_PREFIX):
        return None
    return {
        "requested": {
            name: request.query_params[name]
            for name in SEARCH_PARAMS
            if name in request.query_params
        }
    }


def record_search(
    coordinate: Coordinate,
    radius_meters: int,
    result: AggregationResult | None = None,
) -> None:
    """Record the resolved search and, once known, its outcome counters."""
    enrich_event(**{
        "search.lat": round(coordinate.latitude, 3),
        "search.lon": round(coordinate.longitude, 3),
        "search.radius_meters": radius_meters,
    })
    if result is not None:
        enrich_event(**{
            "search.stations": len(result.stations),
            "search.attempted": result.attempted,
            "search.enriched": result.enriched,
            "search.failed": result.failed,
            "search.dropped": result.dropped,
            "search.cancelled": result.cancelled,
        })
