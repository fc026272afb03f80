"""
Core domain models for ChargeScout.

Station entities are immutable: the enrichment step produces a new Station
for its own slot instead of mutating shared state, which keeps concurrent
lookups from ever touching each other's entries.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from chargescout.core.exceptions import InvalidCoordinate

EARTH_RADIUS_M = 6_371_000.0


class EnrichmentStatus(str, Enum):
    """Outcome of the per-station availability lookup."""
    ENRICHED = "enriched"
    UNAVAILABLE = "unavailable"      # attempted and failed
    NOT_ATTEMPTED = "not_attempted"  # beyond the enrichment bound, or never started


@dataclass(frozen=True)
class Coordinate:
    """WGS84 point. Raises InvalidCoordinate when out of range."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not isinstance(self.latitude, (int, float)) or not isinstance(self.longitude, (int, float)):
            raise InvalidCoordinate("Coordinate values must be numbers")
        if math.isnan(self.latitude) or not -90.0 <= self.latitude <= 90.0:
            raise InvalidCoordinate(
                f"Latitude out of range: {self.latitude}",
                {"latitude": self.latitude},
            )
        if math.isnan(self.longitude) or not -180.0 <= self.longitude <= 180.0:
            raise InvalidCoordinate(
                f"Longitude out of range: {self.longitude}",
                {"longitude": self.longitude},
            )

    def distance_to(self, other: "Coordinate") -> float:
        """Great-circle (haversine) distance in meters."""
        dlat = math.radians(other.latitude - self.latitude)
        dlon = math.radians(other.longitude - self.longitude)
        a = (
            math.sin(dlat / 2) ** 2
            + math.cos(math.radians(self.latitude))
            * math.cos(math.radians(other.latitude))
            * math.sin(dlon / 2) ** 2
        )
        return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Connector:
    """
    Connector group at a station.

    `available` is None when the source did not report it. That is
    "unknown", and must never be presented as zero free connectors.
    """
    type: str
    total: int = 0
    available: int | None = None
    power_kw: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "total": self.total,
            "available": self.available,
            "power_kw": self.power_kw,
        }


def highest_power_kw(connectors: tuple[Connector, ...]) -> float:
    """Highest reported connector power, 0 if none reports power."""
    return max((c.power_kw for c in connectors if c.power_kw is not None), default=0.0)


@dataclass(frozen=True)
class Station:
    """Canonical, provider-agnostic charging station."""
    id: str
    name: str = ""
    operator_name: str | None = None
    location: Coordinate | None = None  # None when the record has no usable position
    connectors: tuple[Connector, ...] = ()
    max_power_kw: float = 0.0
    distance_meters: float = 0.0
    enrichment_status: EnrichmentStatus = EnrichmentStatus.NOT_ATTEMPTED

    @property
    def total_connectors(self) -> int:
        return sum(c.total for c in self.connectors)

    @property
    def available_connectors(self) -> int | None:
        """Free connectors, or None unless every connector reports availability."""
        if not self.connectors or any(c.available is None for c in self.connectors):
            return None
        return sum(c.available for c in self.connectors)

    def with_availability(self, connectors: tuple[Connector, ...]) -> "Station":
        """
        Attach live availability and mark the station enriched.

        Connectors missing a power rating borrow it from the first
        discovery-stage connector of the same type.
        """
        known_power: dict[str, float] = {}
        for c in self.connectors:
            if c.power_kw is not None:
                known_power.setdefault(c.type, c.power_kw)

        merged = tuple(
            c if c.power_kw is not None or c.type not in known_power
            else replace(c, power_kw=known_power[c.type])
            for c in connectors
        )
        return replace(
            self,
            connectors=merged,
            max_power_kw=highest_power_kw(merged),
            enrichment_status=EnrichmentStatus.ENRICHED,
        )

    def mark_unavailable(self) -> "Station":
        """Lookup was attempted and failed; discovery data is retained."""
        return replace(self, enrichment_status=EnrichmentStatus.UNAVAILABLE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "operator_name": self.operator_name,
            "location": self.location.to_dict() if self.location else None,
            "connectors": [c.to_dict() for c in self.connectors],
            "max_power_kw": self.max_power_kw,
            "distance_meters": self.distance_meters,
            "enrichment_status": self.enrichment_status.value,
            "total_connectors": self.total_connectors,
            "available_connectors": self.available_connectors,
        }


@dataclass
class AggregationResult:
    """
    Result of one nearby search.

    `stations` is in discovery order. `attempted` counts candidates whose
    availability lookup actually started; `failed` counts Unavailable ones.
    """
    stations: list[Station] = field(default_factory=list)
    attempted: int = 0
    failed: int = 0
    dropped: int = 0
    cancelled: bool = False

    @property
    def enriched(self) -> int:
        return self.attempted - self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "stations": [s.to_dict() for s in self.stations],
            "attempted": self.attempted,
            "enriched": self.enriched,
            "failed": self.failed,
            "dropped": self.dropped,
            "cancelled": self.cancelled,
        }
