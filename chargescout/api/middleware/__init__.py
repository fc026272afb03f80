"""
API Middleware package.

- Request events: one canonical log line per request
"""

from chargescout.api.middleware.wide_events import (
    WideEventMiddleware,
    record_search,
)

__all__ = [
    "WideEventMiddleware",
    "record_search",
]
