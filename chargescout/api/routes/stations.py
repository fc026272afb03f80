"""
Station search API.

Thin HTTP surface over StationAggregator for the presentation layer.
Every station carries its provider `id`, which is also the key a booking
flow would use.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from chargescout.api.middleware import record_search
from chargescout.core.config import Settings
from chargescout.core.exceptions import InvalidCoordinate
from chargescout.core.models import Coordinate
from chargescout.core.parsers import parse_coordinate_query
from chargescout.services.stations import StationAggregator

logger = structlog.get_logger()
router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================


class LocationOut(BaseModel):
    latitude: float
    longitude: float


class ConnectorOut(BaseModel):
    type: str
    total: int
    available: Optional[int] = None  # None = not reported, distinct from 0
    power_kw: Optional[float] = None


class StationOut(BaseModel):
    id: str
    name: str
    operator_name: Optional[str] = None
    location: Optional[LocationOut] = None  # None = provider sent no usable position
    connectors: list[ConnectorOut]
    max_power_kw: float
    distance_meters: float
    enrichment_status: str
    total_connectors: int
    available_connectors: Optional[int] = None


class NearbySearchResponse(BaseModel):
    stations: list[StationOut]
    attempted: int
    enriched: int
    failed: int
    dropped: int
    cancelled: bool


# =============================================================================
# Dependencies
# =============================================================================


def get_aggregator(request: Request) -> StationAggregator:
    """Aggregator built once in the app lifespan."""
    return request.app.state.aggregator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def resolve_coordinate(
    lat: float | None,
    lon: float | None,
    q: str | None,
) -> Coordinate:
    """Explicit lat/lon wins; otherwise parse the manual "lat, lon" query."""
    if lat is not None and lon is not None:
        return Coordinate(lat, lon)
    if q:
        return parse_coordinate_query(q)
    raise InvalidCoordinate("Provide both 'lat' and 'lon', or 'q' as 'lat, lon'")


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/nearby")
async def nearby_stations(
    aggregator: Annotated[StationAggregator, Depends(get_aggregator)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
    q: str | None = Query(None, max_length=100, description="Coordinates as 'lat, lon'"),
    radius: int | None = Query(None, gt=0, description="Search radius in meters"),
    max_enriched: int | None = Query(None, ge=0, le=50),
) -> NearbySearchResponse:
    """
    Find charging stations near a coordinate with live availability.

    Raises DiscoveryFailed (502) or Cancelled (504) through the app's
    exception handlers; failed availability lookups only show up as
    `enrichment_status="unavailable"` and in `failed`.

    A station's `location` is null when the provider record carries no
    usable position; such stations are still listed (the id is what
    matters for availability and booking) but cannot be placed on a map.
    `available_connectors` is null when availability is unknown, which is
    distinct from 0 free connectors.
    """
    coordinate = resolve_coordinate(lat, lon, q)
    radius_meters = radius or settings.default_radius_meters
    record_search(coordinate, radius_meters)

    result = await aggregator.aggregate(
        coordinate,
        radius_meters,
        max_enriched,
        timeout=settings.search_timeout,
    )

    record_search(coordinate, radius_meters, result)
    return NearbySearchResponse(**result.to_dict())
