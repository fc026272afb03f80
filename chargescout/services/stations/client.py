"""
Station Module - Backend Proxy Clients.

Async clients for the backend proxy that fronts the charging-station
provider. The proxy holds the upstream credentials; these clients never
see an API key.

- DiscoveryClient: one "nearby stations" request per search
- EnrichmentClient: one availability request per station, no retries
"""

import urllib.parse
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from chargescout.core.exceptions import DiscoveryFailed, EnrichmentFailed, InvalidCoordinate
from chargescout.core.models import Coordinate

logger = structlog.get_logger()

DEFAULT_RADIUS_METERS = 5000
MAX_RADIUS_METERS = 50000


class StationProxyClient:
    """
    Shared plumbing for backend proxy requests.

    Pass an `http_client` to reuse one connection pool across requests
    (the API does this); without one, each request opens its own client.
    """

    HEADERS = {
        "Accept": "application/json",
        "User-Agent": "ChargeScout/0.1",
    }

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_client

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a proxy path and decode the JSON body. Raises httpx errors / ValueError."""
        url = f"{self.base_url}{path}"
        if self._http is not None:
            response = await self._http.get(
                url, params=params, headers=self.HEADERS, timeout=self.timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params, headers=self.HEADERS)
        response.raise_for_status()
        return response.json()


class DiscoveryClient(StationProxyClient):
    """Lists candidate stations around a coordinate."""

    NEARBY_PATH = "/api/nearby"

    def __init__(
        self,
        base_url: str,
        max_radius_meters: int = MAX_RADIUS_METERS,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(base_url, timeout=timeout, http_client=http_client)
        self.max_radius_meters = max_radius_meters
        self.log = logger.bind(component="DiscoveryClient")

    async def discover(
        self,
        coordinate: Coordinate,
        radius_meters: int = DEFAULT_RADIUS_METERS,
    ) -> list[Any]:
        """
        Fetch raw station records near a coordinate.

        Args:
            coordinate: Search center
            radius_meters: Search radius, clamped to max_radius_meters

        Returns:
            Raw provider records, in the proxy's relevance/distance order

        Raises:
            InvalidCoordinate: radius is not positive
            DiscoveryFailed: network error, non-success status or bad body
        """
        if radius_meters <= 0:
            raise InvalidCoordinate(
                f"Search radius must be positive, got {radius_meters}",
                {"radius_meters": radius_meters},
            )
        if radius_meters > self.max_radius_meters:
            self.log.debug(
                "Clamping search radius",
                requested=radius_meters,
                max_radius=self.max_radius_meters,
            )
            radius_meters = self.max_radius_meters

        params = {
            "lat": coordinate.latitude,
            "lon": coordinate.longitude,
            "radius": int(radius_meters),
        }
        log = self.log.bind(lat=coordinate.latitude, lon=coordinate.longitude, radius=params["radius"])
        log.info("Discovering nearby stations")

        try:
            data = await self._get_json(self.NEARBY_PATH, params=params)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            log.error("Discovery request rejected", status=status_code)
            raise DiscoveryFailed(
                f"Discovery request returned HTTP {status_code}",
                status_code=status_code,
                cause=e,
            ) from e
        except httpx.TimeoutException as e:
            log.error("Discovery request timeout")
            raise DiscoveryFailed("Discovery request timed out", cause=e) from e
        except httpx.HTTPError as e:
            log.error("Discovery request failed", error=str(e))
            raise DiscoveryFailed("Discovery request failed", cause=e) from e
        except ValueError as e:
            log.error("Discovery response is not JSON", error=str(e))
            raise DiscoveryFailed("Discovery response is not valid JSON", cause=e) from e

        if not isinstance(data, Mapping):
            raise DiscoveryFailed(f"Unexpected discovery payload: {type(data).__name__}")

        results = data.get("results")
        if results is None:
            results = []
        if not isinstance(results, list):
            raise DiscoveryFailed(f"Discovery 'results' is not a list: {type(results).__name__}")

        log.info("Discovery completed", count=len(results))
        return results


class EnrichmentClient(StationProxyClient):
    """Fetches live connector availability for one station at a time."""

    def __init__(
        self,
        base_url: str,
        provider_prefix: str = "tt",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(base_url, timeout=timeout, http_client=http_client)
        self.provider_prefix = provider_prefix.strip("/")
        self.log = logger.bind(component="EnrichmentClient")

    def availability_path(self, station_id: str) -> str:
        return f"/api/{self.provider_prefix}/availability/{urllib.parse.quote(station_id, safe='')}"

    async def enrich(self, station_id: str) -> Mapping[str, Any]:
        """
        Fetch the raw availability payload for one station.

        A single attempt; retrying is left to whoever re-runs the search.

        Raises:
            EnrichmentFailed: timeout, non-success status or malformed body
        """
        try:
            data = await self._get_json(self.availability_path(station_id))
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise EnrichmentFailed(station_id, f"HTTP {status_code}", status_code=status_code) from e
        except httpx.TimeoutException as e:
            raise EnrichmentFailed(station_id, "timeout") from e
        except httpx.HTTPError as e:
            raise EnrichmentFailed(station_id, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise EnrichmentFailed(station_id, "invalid JSON") from e

        if not isinstance(data, Mapping):
            raise EnrichmentFailed(station_id, f"unexpected payload type {type(data).__name__}")
        return data
