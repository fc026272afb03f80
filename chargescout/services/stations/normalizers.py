"""
Station Module - Payload Normalizers.

Maps provider-shaped discovery records and availability payloads onto the
canonical Station / Connector models. Both functions are pure.

Every canonical field is resolved from an ordered table of candidate paths:
the first path whose value is present and parses wins. Supporting a new
provider quirk means adding a path to a table, nothing else.

A path is a tuple of steps; a str step indexes a mapping, an int step
indexes a list. ("poi", "brands", 0, "name") reads raw["poi"]["brands"][0]["name"].
"""

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from chargescout.core.exceptions import InvalidCoordinate, InvalidRecord
from chargescout.core.models import Connector, Coordinate, Station, highest_power_kw
from chargescout.core.parsers import parse_count, parse_float, parse_text

T = TypeVar("T")

Path = tuple[str | int, ...]

UNKNOWN_CONNECTOR_TYPE = "Unknown"


# =============================================================================
# Field Tables - discovery records
# =============================================================================

STATION_ID_FIELDS: tuple[Path, ...] = (
    ("id",),
    ("poi", "id"),
    ("stationId",),
    ("station_id",),
)

STATION_NAME_FIELDS: tuple[Path, ...] = (
    ("poi", "name"),
    ("name",),
    ("title",),
)

OPERATOR_FIELDS: tuple[Path, ...] = (
    ("brand",),
    ("operator",),
    ("operatorName",),
    ("poi", "brands", 0, "name"),
)

LATITUDE_FIELDS: tuple[Path, ...] = (
    ("position", "lat"),
    ("position", "latitude"),
    ("lat",),
    ("latitude",),
)

LONGITUDE_FIELDS: tuple[Path, ...] = (
    ("position", "lon"),
    ("position", "lng"),
    ("position", "longitude"),
    ("lon",),
    ("lng",),
    ("longitude",),
)

DISTANCE_FIELDS: tuple[Path, ...] = (
    ("dist",),
    ("distance",),
    ("distanceMeters",),
)

STATION_CONNECTOR_LISTS: tuple[Path, ...] = (
    ("connectors",),
    ("chargingPark", "connectors"),
)


# =============================================================================
# Field Tables - availability payloads and connector entries
# =============================================================================

AVAILABILITY_CONNECTOR_LISTS: tuple[Path, ...] = (
    ("connectors",),
    ("data",),
)

CONNECTOR_TYPE_FIELDS: tuple[Path, ...] = (
    ("type",),
    ("connectorType",),
)

CONNECTOR_TOTAL_FIELDS: tuple[Path, ...] = (
    ("total",),
    ("totalCount",),
    ("count",),
)

CONNECTOR_AVAILABLE_FIELDS: tuple[Path, ...] = (
    ("available",),
    ("availableCount",),
    ("availability", "current", "available"),
)

CONNECTOR_POWER_FIELDS: tuple[Path, ...] = (
    ("powerKW",),
    ("ratedPowerKW",),
    ("power_kw",),
)


# =============================================================================
# Resolution
# =============================================================================


def _lookup(raw: Any, path: Path) -> Any:
    """Walk one path; None when any step is missing or of the wrong shape."""
    current = raw
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def resolve(raw: Any, paths: tuple[Path, ...], parse: Callable[[Any], T | None]) -> T | None:
    """Return the first candidate value that is present and parses."""
    for path in paths:
        value = parse(_lookup(raw, path))
        if value is not None:
            return value
    return None


def _parse_list(value: Any) -> list | None:
    return value if isinstance(value, list) else None


def _parse_non_negative(value: Any) -> float | None:
    number = parse_float(value)
    return number if number is not None and number >= 0 else None


def normalize_connector(raw: Mapping[str, Any]) -> Connector:
    """Map one connector entry; keeps 0 <= available <= total."""
    available = resolve(raw, CONNECTOR_AVAILABLE_FIELDS, parse_count)
    total = resolve(raw, CONNECTOR_TOTAL_FIELDS, parse_count) or 0
    if available is not None and available > total:
        total = available

    return Connector(
        type=resolve(raw, CONNECTOR_TYPE_FIELDS, parse_text) or UNKNOWN_CONNECTOR_TYPE,
        total=total,
        available=available,
        power_kw=resolve(raw, CONNECTOR_POWER_FIELDS, _parse_non_negative),
    )


def _normalize_connectors(raw: Any, lists: tuple[Path, ...]) -> tuple[Connector, ...]:
    entries = resolve(raw, lists, _parse_list) or []
    return tuple(normalize_connector(e) for e in entries if isinstance(e, Mapping))


def _resolve_location(raw: Mapping[str, Any]) -> Coordinate | None:
    lat = resolve(raw, LATITUDE_FIELDS, parse_float)
    lon = resolve(raw, LONGITUDE_FIELDS, parse_float)
    if lat is None or lon is None:
        return None
    try:
        return Coordinate(lat, lon)
    except InvalidCoordinate:
        return None


def normalize_station(raw: Any, origin: Coordinate | None = None) -> Station:
    """
    Map one raw discovery record to a canonical Station.

    Args:
        raw: Provider record (untyped mapping)
        origin: Search coordinate, used to compute distance when the
            record does not carry one

    Returns:
        Station with status NOT_ATTEMPTED

    Raises:
        InvalidRecord: no identifier under any known key
    """
    if not isinstance(raw, Mapping):
        raise InvalidRecord(f"Record is not an object: {type(raw).__name__}")

    station_id = resolve(raw, STATION_ID_FIELDS, parse_text)
    if station_id is None:
        raise InvalidRecord("No station identifier", sorted(str(k) for k in raw.keys()))

    location = _resolve_location(raw)
    distance = resolve(raw, DISTANCE_FIELDS, _parse_non_negative)
    if distance is None:
        distance = origin.distance_to(location) if origin and location else 0.0

    connectors = _normalize_connectors(raw, STATION_CONNECTOR_LISTS)

    return Station(
        id=station_id,
        name=resolve(raw, STATION_NAME_FIELDS, parse_text) or "",
        operator_name=resolve(raw, OPERATOR_FIELDS, parse_text),
        location=location,
        connectors=connectors,
        max_power_kw=highest_power_kw(connectors),
        distance_meters=distance,
    )


def normalize_availability(raw: Any) -> tuple[Connector, ...]:
    """
    Map a raw availability payload to connectors.

    Never raises: an absent or non-object payload yields no connectors.
    """
    if not isinstance(raw, Mapping):
        return ()
    return _normalize_connectors(raw, AVAILABILITY_CONNECTOR_LISTS)
