"""
Pytest configuration and fixtures for ChargeScout tests.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from chargescout.api.main import create_app
from chargescout.api.routes.stations import get_aggregator
from chargescout.core.config import Settings
from chargescout.core.exceptions import DiscoveryFailed, EnrichmentFailed
from chargescout.core.models import Coordinate
from chargescout.services.stations import StationAggregator

HYDERABAD = Coordinate(17.43, 78.45)


class FakeDiscovery:
    """Stands in for DiscoveryClient; records calls."""

    def __init__(
        self,
        records: list[Any],
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.records = records
        self.error = error
        self.delay = delay
        self.calls: list[tuple[Coordinate, int]] = []

    async def discover(self, coordinate: Coordinate, radius_meters: int) -> list[Any]:
        self.calls.append((coordinate, radius_meters))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeEnrichment:
    """
    Stands in for EnrichmentClient.

    `payloads` maps station id -> payload, or -> an exception to raise.
    Unknown ids fail with a 404. `delays` maps station id -> seconds.
    """

    def __init__(
        self,
        payloads: dict[str, Any] | None = None,
        delays: dict[str, float] | None = None,
    ):
        self.payloads = payloads or {}
        self.delays = delays or {}
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def enrich(self, station_id: str) -> Any:
        self.calls.append(station_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(station_id, 0.001))
            if station_id not in self.payloads:
                raise EnrichmentFailed(station_id, "HTTP 404", status_code=404)
            payload = self.payloads[station_id]
            if isinstance(payload, Exception):
                raise payload
            return payload
        finally:
            self.in_flight -= 1


def make_record(station_id: str, name: str | None = None, dist: float = 100.0) -> dict[str, Any]:
    """Provider-shaped discovery record."""
    return {
        "id": station_id,
        "dist": dist,
        "brand": "Tata Power",
        "poi": {"name": name or f"Station {station_id}"},
        "position": {"lat": 17.43, "lon": 78.45},
        "connectors": [{"type": "CCS2", "powerKW": 60, "total": 2}],
    }


def make_availability(available: int = 1, total: int = 2) -> dict[str, Any]:
    return {"connectors": [{"type": "CCS2", "total": total, "available": available}]}


@pytest.fixture
def coordinate() -> Coordinate:
    return HYDERABAD


@pytest.fixture
def record_factory() -> Callable[..., dict[str, Any]]:
    return make_record


@pytest.fixture
def availability_factory() -> Callable[..., dict[str, Any]]:
    return make_availability


@pytest.fixture
def build_aggregator() -> Callable[..., tuple[StationAggregator, FakeDiscovery, FakeEnrichment]]:
    """Factory wiring a StationAggregator to fake clients."""

    def _build(
        records: list[Any],
        payloads: dict[str, Any] | None = None,
        delays: dict[str, float] | None = None,
        discovery_error: Exception | None = None,
        discovery_delay: float = 0.0,
        concurrency_limit: int = 4,
        default_max_enriched: int = 10,
    ) -> tuple[StationAggregator, FakeDiscovery, FakeEnrichment]:
        discovery = FakeDiscovery(records, error=discovery_error, delay=discovery_delay)
        enrichment = FakeEnrichment(payloads, delays)
        aggregator = StationAggregator(
            discovery,
            enrichment,
            concurrency_limit=concurrency_limit,
            default_max_enriched=default_max_enriched,
        )
        return aggregator, discovery, enrichment

    return _build


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_version="1.2.3",
        environment="staging",
        backend_proxy_url="http://proxy.test",
        search_timeout=5.0,
        max_enriched=10,
    )


@pytest.fixture
def api_aggregator() -> StationAggregator:
    """Aggregator served by the test API: A and C enrich, B fails."""
    records = [make_record("A"), make_record("B"), make_record("C")]
    payloads = {
        "A": make_availability(1, 2),
        "B": EnrichmentFailed("B", "timeout"),
        "C": make_availability(0, 2),
    }
    return StationAggregator(FakeDiscovery(records), FakeEnrichment(payloads))


@pytest.fixture
def app_factory(test_settings: Settings) -> Callable[[StationAggregator], FastAPI]:
    """Build the API around a given aggregator."""

    def _build(aggregator: StationAggregator) -> FastAPI:
        app = create_app(test_settings)
        app.dependency_overrides[get_aggregator] = lambda: aggregator
        return app

    return _build


@pytest_asyncio.fixture(scope="function")
async def client(
    test_settings: Settings,
    api_aggregator: StationAggregator,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the API with the pipeline swapped for fakes."""
    app = create_app(test_settings)
    app.dependency_overrides[get_aggregator] = lambda: api_aggregator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def failing_client(test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """API client whose discovery always fails with HTTP 503."""
    aggregator = StationAggregator(
        FakeDiscovery([], error=DiscoveryFailed("Discovery request returned HTTP 503", status_code=503)),
        FakeEnrichment(),
    )
    app = create_app(test_settings)
    app.dependency_overrides[get_aggregator] = lambda: aggregator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
