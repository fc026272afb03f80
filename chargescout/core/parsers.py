"""
Shared parsing utilities for provider payloads and user input.

Provider fields arrive as numbers, numeric strings, or junk. These helpers
return None for anything unusable so callers can fall through to the next
candidate field or to a documented default.
"""

import math
from typing import Any

from chargescout.core.exceptions import InvalidCoordinate
from chargescout.core.models import Coordinate


def is_present(value: Any) -> bool:
    """True for a usable value: not None and not an empty/blank string."""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def parse_float(value: Any) -> float | None:
    """
    Parse a float from a provider field.

    Examples:
        22 -> 22.0
        "7.4" -> 7.4
        "" -> None
        "n/a" -> None
        True -> None (booleans are not numbers here)
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def parse_count(value: Any) -> int | None:
    """Parse a non-negative integer count. Fractions truncate, negatives clamp to 0."""
    result = parse_float(value)
    if result is None:
        return None
    return max(0, int(result))


def parse_text(value: Any) -> str | None:
    """Stringify scalar identifiers/names; reject containers and blanks."""
    if isinstance(value, (dict, list, tuple, set, bool)) or not is_present(value):
        return None
    return str(value).strip()


def parse_coordinate_query(query: str) -> Coordinate:
    """
    Parse a manually typed "lat, lon" pair.

    Examples:
        "17.43, 78.45" -> Coordinate(17.43, 78.45)
        "17.43,78.45" -> Coordinate(17.43, 78.45)
        "Hyderabad" -> InvalidCoordinate

    Raises:
        InvalidCoordinate: wrong shape, non-numeric parts, or out of range
    """
    parts = [p.strip() for p in (query or "").split(",")]
    if len(parts) != 2:
        raise InvalidCoordinate(
            "Expected coordinates as 'lat, lon'",
            {"query": (query or "")[:100]},
        )

    lat = parse_float(parts[0])
    lon = parse_float(parts[1])
    if lat is None or lon is None:
        raise InvalidCoordinate(
            "Coordinates must be numeric",
            {"query": query[:100]},
        )
    return Coordinate(lat, lon)
