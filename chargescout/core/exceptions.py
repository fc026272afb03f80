"""
Exception hierarchy for ChargeScout.

Only DiscoveryFailed, InvalidCoordinate and pre-discovery Cancelled ever
reach the caller of the station pipeline; the rest are recovered locally
and folded into the result's status fields and counters.
"""

from typing import Any


class ChargeScoutException(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidCoordinate(ChargeScoutException):
    """Coordinate (or search radius) is unparsable or out of range."""


class InvalidRecord(ChargeScoutException):
    """A discovery record has no usable station identifier."""

    def __init__(self, reason: str, record_keys: list[str] | None = None):
        super().__init__(reason, {"record_keys": record_keys or []})
        self.reason = reason


class DiscoveryFailed(ChargeScoutException):
    """The nearby-stations request failed. Fatal for the whole search."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(message, details)
        self.status_code = status_code
        self.cause = cause


class EnrichmentFailed(ChargeScoutException):
    """One station's availability lookup failed."""

    def __init__(
        self,
        station_id: str,
        cause: str,
        status_code: int | None = None,
    ):
        details: dict[str, Any] = {"station_id": station_id, "cause": cause}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(f"Availability lookup failed for {station_id}: {cause}", details)
        self.station_id = station_id
        self.cause = cause
        self.status_code = status_code


class Cancelled(ChargeScoutException):
    """Search was cancelled or ran past its deadline before discovery completed."""
