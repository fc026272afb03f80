"""
Unit tests for the station discovery/enrichment pipeline.
"""

import asyncio

import pytest

from chargescout.core.exceptions import Cancelled, DiscoveryFailed, EnrichmentFailed
from chargescout.core.models import Coordinate, EnrichmentStatus
from chargescout.services.stations import StationAggregator

pytestmark = pytest.mark.asyncio

ENRICHED = EnrichmentStatus.ENRICHED
UNAVAILABLE = EnrichmentStatus.UNAVAILABLE
NOT_ATTEMPTED = EnrichmentStatus.NOT_ATTEMPTED


def statuses(result):
    return [(s.id, s.enrichment_status) for s in result.stations]


class TestAggregate:

    async def test_single_timeout_is_isolated(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        """A, B, C discovered; B's lookup times out."""
        aggregator, discovery, enrichment = build_aggregator(
            [record_factory("A"), record_factory("B"), record_factory("C")],
            payloads={
                "A": availability_factory(1, 2),
                "B": EnrichmentFailed("B", "timeout"),
                "C": availability_factory(2, 2),
            },
        )

        result = await aggregator.aggregate(coordinate, 5000, 10)

        assert statuses(result) == [("A", ENRICHED), ("B", UNAVAILABLE), ("C", ENRICHED)]
        assert result.attempted == 3
        assert result.failed == 1
        assert discovery.calls == [(coordinate, 5000)]
        assert sorted(enrichment.calls) == ["A", "B", "C"]

    async def test_enriched_and_unavailable_data(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        aggregator, _, _ = build_aggregator(
            [record_factory("A"), record_factory("B")],
            payloads={"A": availability_factory(1, 2), "B": EnrichmentFailed("B", "HTTP 500")},
        )

        result = await aggregator.aggregate(coordinate, 5000, 10)
        a, b = result.stations

        assert a.connectors[0].available == 1
        assert a.connectors[0].power_kw == 60.0  # carried over from discovery
        assert a.max_power_kw == 60.0
        assert a.available_connectors == 1
        # B keeps its discovery-stage connectors, with availability unknown
        assert b.connectors[0].total == 2
        assert b.connectors[0].available is None
        assert b.available_connectors is None

    async def test_order_follows_discovery_not_completion(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        ids = ["A", "B", "C", "D"]
        aggregator, _, _ = build_aggregator(
            [record_factory(i) for i in ids],
            payloads={i: availability_factory() for i in ids},
            delays={"A": 0.04, "B": 0.03, "C": 0.02, "D": 0.001},
        )

        result = await aggregator.aggregate(coordinate, 5000, 10)

        assert [s.id for s in result.stations] == ids
        assert all(s.enrichment_status == ENRICHED for s in result.stations)

    async def test_enrichment_bound(self, build_aggregator, record_factory, availability_factory, coordinate):
        ids = ["A", "B", "C", "D", "E"]
        aggregator, _, enrichment = build_aggregator(
            [record_factory(i) for i in ids],
            payloads={i: availability_factory() for i in ids},
        )

        result = await aggregator.aggregate(coordinate, 5000, 2)

        assert statuses(result) == [
            ("A", ENRICHED),
            ("B", ENRICHED),
            ("C", NOT_ATTEMPTED),
            ("D", NOT_ATTEMPTED),
            ("E", NOT_ATTEMPTED),
        ]
        assert result.attempted == 2
        assert sorted(enrichment.calls) == ["A", "B"]

    async def test_zero_bound_skips_enrichment(self, build_aggregator, record_factory, coordinate):
        aggregator, _, enrichment = build_aggregator([record_factory("A")])

        result = await aggregator.aggregate(coordinate, 5000, 0)

        assert statuses(result) == [("A", NOT_ATTEMPTED)]
        assert result.attempted == 0
        assert enrichment.calls == []

    async def test_defaults_when_not_passed(self, build_aggregator, record_factory, availability_factory, coordinate):
        aggregator, discovery, enrichment = build_aggregator(
            [record_factory(i) for i in "ABC"],
            payloads={i: availability_factory() for i in "ABC"},
            default_max_enriched=1,
        )

        result = await aggregator.aggregate(coordinate)

        assert discovery.calls == [(coordinate, 5000)]
        assert enrichment.calls == ["A"]
        assert result.attempted == 1

    async def test_discovery_failure_short_circuits(self, build_aggregator, coordinate):
        aggregator, _, enrichment = build_aggregator(
            [],
            discovery_error=DiscoveryFailed("Discovery request returned HTTP 502", status_code=502),
        )

        with pytest.raises(DiscoveryFailed):
            await aggregator.aggregate(coordinate, 5000, 10)

        assert enrichment.calls == []

    async def test_no_results(self, build_aggregator, coordinate):
        aggregator, _, enrichment = build_aggregator([])

        result = await aggregator.aggregate(coordinate, 5000, 10)

        assert result.stations == []
        assert (result.attempted, result.failed, result.dropped) == (0, 0, 0)
        assert enrichment.calls == []

    async def test_invalid_and_duplicate_records_dropped(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        records = [
            record_factory("A"),
            {"poi": {"name": "No identifier"}},
            "not-a-record",
            {"id": "B", "name": "Alternate name field"},
            record_factory("A", name="Duplicate of A"),
        ]
        aggregator, _, _ = build_aggregator(
            records,
            payloads={"A": availability_factory(), "B": availability_factory()},
        )

        result = await aggregator.aggregate(coordinate, 5000, 10)

        assert [s.id for s in result.stations] == ["A", "B"]
        assert result.stations[0].name == "Station A"
        assert result.stations[1].name == "Alternate name field"
        assert result.dropped == 3

    async def test_all_enrichment_failing_still_returns(self, build_aggregator, record_factory, coordinate):
        aggregator, _, _ = build_aggregator([record_factory(i) for i in "ABC"], payloads={})

        result = await aggregator.aggregate(coordinate, 5000, 10)

        assert result.attempted == 3
        assert result.failed == 3
        assert all(s.enrichment_status == UNAVAILABLE for s in result.stations)

    async def test_unexpected_enrichment_error_is_contained(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        aggregator, _, _ = build_aggregator(
            [record_factory("A"), record_factory("B")],
            payloads={"A": RuntimeError("boom"), "B": availability_factory()},
        )

        result = await aggregator.aggregate(coordinate, 5000, 10)

        assert statuses(result) == [("A", UNAVAILABLE), ("B", ENRICHED)]
        assert result.failed == 1

    async def test_concurrency_is_bounded(self, build_aggregator, record_factory, availability_factory, coordinate):
        ids = [f"S{i}" for i in range(12)]
        aggregator, _, enrichment = build_aggregator(
            [record_factory(i) for i in ids],
            payloads={i: availability_factory() for i in ids},
            delays={i: 0.01 for i in ids},
            concurrency_limit=3,
        )

        result = await aggregator.aggregate(coordinate, 5000, 12)

        assert result.attempted == 12
        assert 1 < enrichment.max_in_flight <= 3

    async def test_repeat_runs_are_identical(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        ids = ["A", "B", "C", "D"]
        aggregator, _, _ = build_aggregator(
            [record_factory(i, dist=10.0 * n) for n, i in enumerate(ids)],
            payloads={"A": availability_factory(0, 1), "B": EnrichmentFailed("B", "timeout"),
                      "C": availability_factory(2, 3), "D": availability_factory(1, 1)},
            delays={"A": 0.02, "B": 0.001, "C": 0.01, "D": 0.005},
        )

        first = await aggregator.aggregate(coordinate, 5000, 3)
        second = await aggregator.aggregate(coordinate, 5000, 3)

        assert first.to_dict() == second.to_dict()
        assert first.stations[3].enrichment_status == NOT_ATTEMPTED

    async def test_concurrency_limit_must_be_positive(self, build_aggregator):
        with pytest.raises(ValueError):
            build_aggregator([], concurrency_limit=0)


class TestCancellation:

    async def test_deadline_before_discovery_raises(self, build_aggregator, record_factory, coordinate):
        aggregator, _, enrichment = build_aggregator([record_factory("A")], discovery_delay=1.0)

        with pytest.raises(Cancelled):
            await aggregator.aggregate(coordinate, 5000, 10, timeout=0.05)

        assert enrichment.calls == []

    async def test_event_set_before_start_raises(self, build_aggregator, record_factory, coordinate):
        aggregator, _, _ = build_aggregator([record_factory("A")])
        event = asyncio.Event()
        event.set()

        with pytest.raises(Cancelled):
            await aggregator.aggregate(coordinate, 5000, 10, cancel_event=event)

    async def test_deadline_during_enrichment_returns_partial(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        """A finishes, B hangs in flight, C never gets a slot."""
        aggregator, _, enrichment = build_aggregator(
            [record_factory("A"), record_factory("B"), record_factory("C")],
            payloads={i: availability_factory() for i in "ABC"},
            delays={"A": 0.001, "B": 5.0, "C": 0.001},
            concurrency_limit=1,
        )

        result = await aggregator.aggregate(coordinate, 5000, 10, timeout=0.2)

        assert statuses(result) == [("A", ENRICHED), ("B", UNAVAILABLE), ("C", NOT_ATTEMPTED)]
        assert result.cancelled is True
        assert result.attempted == 2
        assert result.failed == 1
        assert enrichment.calls == ["A", "B"]
        assert enrichment.in_flight == 0

    async def test_event_during_enrichment_returns_partial(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        aggregator, _, _ = build_aggregator(
            [record_factory("A"), record_factory("B")],
            payloads={i: availability_factory() for i in "AB"},
            delays={"A": 0.001, "B": 5.0},
        )
        event = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.1)
            event.set()

        canceller = asyncio.ensure_future(cancel_soon())
        result = await aggregator.aggregate(coordinate, 5000, 10, cancel_event=event)
        await canceller

        assert statuses(result) == [("A", ENRICHED), ("B", UNAVAILABLE)]
        assert result.cancelled is True

    async def test_generous_deadline_is_not_cancelled(
        self, build_aggregator, record_factory, availability_factory, coordinate
    ):
        aggregator, _, _ = build_aggregator(
            [record_factory("A")],
            payloads={"A": availability_factory()},
        )

        result = await aggregator.aggregate(coordinate, 5000, 10, timeout=5.0, cancel_event=asyncio.Event())

        assert result.cancelled is False
        assert statuses(result) == [("A", ENRICHED)]


async def test_aggregator_with_duck_typed_clients():
    """StationAggregator only needs discover/enrich coroutines."""

    class Discovery:
        async def discover(self, coordinate, radius_meters):
            return [{"id": "X"}]

    class Enrichment:
        async def enrich(self, station_id):
            return {"data": [{"connectorType": "CCS2", "totalCount": 1, "availableCount": 1}]}

    result = await StationAggregator(Discovery(), Enrichment()).aggregate(Coordinate(0, 0))

    assert result.stations[0].connectors[0].available == 1
