"""
Station Module - Discovery and Enrichment Pipeline.

coordinate -> discovery -> normalize -> bounded concurrent availability
lookups -> AggregationResult.

Enrichment lookups run as independent tasks behind a semaphore. Each task
owns exactly one slot of the result list (by discovery index), so the
order in which lookups complete never reorders or cross-writes stations.
"""

import asyncio
from collections.abc import Iterable
from typing import Any, Protocol

import structlog

from chargescout.core.exceptions import Cancelled, EnrichmentFailed, InvalidRecord
from chargescout.core.models import AggregationResult, Coordinate, EnrichmentStatus, Station
from chargescout.services.stations.normalizers import normalize_availability, normalize_station

logger = structlog.get_logger()

DEFAULT_CONCURRENCY = 6
DEFAULT_MAX_ENRICHED = 10
DEFAULT_RADIUS_METERS = 5000


class StationDiscovery(Protocol):
    async def discover(self, coordinate: Coordinate, radius_meters: int) -> list[Any]: ...


class StationEnrichment(Protocol):
    async def enrich(self, station_id: str) -> Any: ...


class StationAggregator:
    """
    Orchestrates one nearby search.

    Only discovery failure (DiscoveryFailed) and cancellation before
    discovery completes (Cancelled) escape `aggregate`. Bad records and
    failed availability lookups are folded into the result counters.
    """

    def __init__(
        self,
        discovery: StationDiscovery,
        enrichment: StationEnrichment,
        concurrency_limit: int = DEFAULT_CONCURRENCY,
        default_radius_meters: int = DEFAULT_RADIUS_METERS,
        default_max_enriched: int = DEFAULT_MAX_ENRICHED,
    ):
        """
        Args:
            discovery: Client providing `discover(coordinate, radius_meters)`
            enrichment: Client providing `enrich(station_id)`
            concurrency_limit: Max availability requests in flight at once
            default_radius_meters: Radius used when a call does not pass one
            default_max_enriched: Candidate cap used when a call does not pass one
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        self.discovery = discovery
        self.enrichment = enrichment
        self.concurrency_limit = concurrency_limit
        self.default_radius_meters = default_radius_meters
        self.default_max_enriched = default_max_enriched
        self.log = logger.bind(component="StationAggregator")

    async def aggregate(
        self,
        coordinate: Coordinate,
        radius_meters: int | None = None,
        max_enriched: int | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AggregationResult:
        """
        Find stations near `coordinate` and attach live availability.

        Args:
            coordinate: Search center
            radius_meters: Search radius (default_radius_meters if None)
            max_enriched: How many leading stations get an availability
                lookup (default_max_enriched if None)
            timeout: Overall deadline in seconds
            cancel_event: Setting this event cancels the search

        Returns:
            AggregationResult in discovery order. If the deadline or the
            event fires after discovery, the partial result is returned
            with `cancelled=True`.

        Raises:
            DiscoveryFailed: discovery request failed
            Cancelled: deadline/cancellation hit before discovery completed
            InvalidCoordinate: radius is not positive
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        radius = self.default_radius_meters if radius_meters is None else radius_meters
        limit = self.default_max_enriched if max_enriched is None else max(0, max_enriched)

        log = self.log.bind(
            lat=coordinate.latitude,
            lon=coordinate.longitude,
            radius=radius,
            max_enriched=limit,
        )

        # === Step 1: Discovery ===
        discovery_task = asyncio.ensure_future(self.discovery.discover(coordinate, radius))
        try:
            completed = await _wait_until_stopped([discovery_task], deadline, cancel_event)
        finally:
            if not discovery_task.done():
                discovery_task.cancel()
        if not completed:
            await asyncio.gather(discovery_task, return_exceptions=True)
            log.warning("Search cancelled before discovery completed")
            raise Cancelled("Search cancelled before discovery completed")
        raw_records = discovery_task.result()

        # === Step 2: Normalize ===
        stations, dropped = self._normalize_all(raw_records, coordinate, log)

        # === Step 3 + 4: Bounded enrichment of the leading candidates ===
        candidates = min(limit, len(stations))
        cancelled = False
        if candidates:
            cancelled = not await self._enrich_candidates(stations, candidates, deadline, cancel_event, log)

        # === Step 5: Assemble ===
        attempted = sum(1 for s in stations if s.enrichment_status != EnrichmentStatus.NOT_ATTEMPTED)
        failed = sum(1 for s in stations if s.enrichment_status == EnrichmentStatus.UNAVAILABLE)
        result = AggregationResult(
            stations=stations,
            attempted=attempted,
            failed=failed,
            dropped=dropped,
            cancelled=cancelled,
        )

        log.info(
            "Search completed",
            stations=len(stations),
            attempted=attempted,
            failed=failed,
            dropped=dropped,
            cancelled=cancelled,
        )
        return result

    def _normalize_all(
        self,
        raw_records: Iterable[Any],
        origin: Coordinate,
        log: Any,
    ) -> tuple[list[Station], int]:
        """Normalize records in order, dropping invalid and duplicate ones."""
        stations: list[Station] = []
        seen: set[str] = set()
        dropped = 0

        for index, raw in enumerate(raw_records):
            try:
                station = normalize_station(raw, origin=origin)
            except InvalidRecord as e:
                dropped += 1
                log.warning("Dropping discovery record", index=index, reason=e.reason, **e.details)
                continue

            if station.id in seen:
                dropped += 1
                log.warning("Dropping duplicate station", index=index, station_id=station.id)
                continue

            seen.add(station.id)
            stations.append(station)

        return stations, dropped

    async def _enrich_candidates(
        self,
        slots: list[Station],
        count: int,
        deadline: float | None,
        cancel_event: asyncio.Event | None,
        log: Any,
    ) -> bool:
        """
        Enrich slots[0:count] in place, at most `concurrency_limit` at a time.

        Returns False if the deadline/cancellation cut the fan-out short.
        Lookups abandoned mid-flight are marked UNAVAILABLE; those that
        never got a semaphore slot stay NOT_ATTEMPTED.
        """
        semaphore = asyncio.Semaphore(self.concurrency_limit)
        started = [False] * count
        tasks = [
            asyncio.ensure_future(self._enrich_slot(index, slots, started, semaphore, log))
            for index in range(count)
        ]

        try:
            completed = await _wait_until_stopped(tasks, deadline, cancel_event)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        if completed:
            return True

        await asyncio.gather(*tasks, return_exceptions=True)
        abandoned = 0
        for index in range(count):
            if started[index] and slots[index].enrichment_status == EnrichmentStatus.NOT_ATTEMPTED:
                slots[index] = slots[index].mark_unavailable()
                abandoned += 1

        log.warning(
            "Enrichment cut short",
            abandoned=abandoned,
            not_started=started.count(False),
        )
        return False

    async def _enrich_slot(
        self,
        index: int,
        slots: list[Station],
        started: list[bool],
        semaphore: asyncio.Semaphore,
        log: Any,
    ) -> None:
        """Look up one station and write the outcome into its own slot."""
        async with semaphore:
            started[index] = True
            station = slots[index]
            try:
                payload = await self.enrichment.enrich(station.id)
            except EnrichmentFailed as e:
                log.warning("Availability lookup failed", station_id=station.id, cause=e.cause)
                slots[index] = station.mark_unavailable()
                return
            except Exception as e:
                log.error(
                    "Availability lookup raised",
                    station_id=station.id,
                    error=f"{type(e).__name__}: {e}",
                )
                slots[index] = station.mark_unavailable()
                return

            slots[index] = station.with_availability(normalize_availability(payload))


async def _wait_until_stopped(
    tasks: list[asyncio.Future],
    deadline: float | None,
    cancel_event: asyncio.Event | None,
) -> bool:
    """
    Wait for every task to settle, or for the deadline / cancel event.

    Returns True if all tasks settled first. Never cancels `tasks` itself.
    """
    loop = asyncio.get_running_loop()
    pending: set[asyncio.Future] = set(tasks)
    waiter: asyncio.Future | None = None
    if cancel_event is not None:
        if cancel_event.is_set():
            return False
        waiter = asyncio.ensure_future(cancel_event.wait())

    try:
        while pending:
            remaining = None
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False

            watch = pending | {waiter} if waiter is not None else pending
            done, _ = await asyncio.wait(watch, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            if not done:
                return False

            pending -= done
            if waiter is not None and waiter.done():
                return not pending
        return True
    finally:
        if waiter is not None and not waiter.done():
            waiter.cancel()
