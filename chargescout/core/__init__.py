"""
Core package initialization.
"""

from chargescout.core.config import Settings, get_settings
from chargescout.core.exceptions import (
    Cancelled,
    ChargeScoutException,
    DiscoveryFailed,
    EnrichmentFailed,
    InvalidCoordinate,
    InvalidRecord,
)
from chargescout.core.models import (
    AggregationResult,
    Connector,
    Coordinate,
    EnrichmentStatus,
    Station,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "ChargeScoutException",
    "InvalidCoordinate",
    "InvalidRecord",
    "DiscoveryFailed",
    "EnrichmentFailed",
    "Cancelled",
    # Models
    "Coordinate",
    "Connector",
    "Station",
    "EnrichmentStatus",
    "AggregationResult",
]
