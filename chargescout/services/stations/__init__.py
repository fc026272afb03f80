"""
Station Module for ChargeScout.

Finds charging stations near a coordinate via the backend proxy and
attaches live per-connector availability.

Components:
- DiscoveryClient: nearby-stations query
- EnrichmentClient: per-station availability query
- StationAggregator: discovery -> normalize -> bounded enrichment
- normalize_station / normalize_availability: provider payload mapping

Usage:
    from chargescout.services.stations import (
        DiscoveryClient, EnrichmentClient, StationAggregator,
    )

    aggregator = StationAggregator(
        DiscoveryClient(base_url),
        EnrichmentClient(base_url),
        concurrency_limit=6,
    )
    result = await aggregator.aggregate(Coordinate(17.43, 78.45), 5000, 10)
"""

from chargescout.services.stations.client import (
    DiscoveryClient,
    EnrichmentClient,
    StationProxyClient,
)
from chargescout.services.stations.normalizers import (
    normalize_availability,
    normalize_connector,
    normalize_station,
)
from chargescout.services.stations.pipeline import StationAggregator

__all__ = [
    # Clients
    "StationProxyClient",
    "DiscoveryClient",
    "EnrichmentClient",

    # Pipeline
    "StationAggregator",

    # Normalizers
    "normalize_station",
    "normalize_availability",
    "normalize_connector",
]
