"""
Structured logging for ChargeScout.

Two layers:
- `configure_logging` sets up structlog (JSON in production, console in dev)
- a per-request "search event": one canonical log line per API request,
  carrying the service identity, the HTTP facts and, for station searches,
  the search parameters and outcome counters

The event lives in a context variable for the duration of the request.
Handlers add to it with `enrich_event`; the middleware emits it once.
"""

import logging
import random
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Any

import structlog
from structlog.types import Processor

_request_event: ContextVar[dict[str, Any]] = ContextVar("request_event")
_request_start: ContextVar[float] = ContextVar("request_start", default=0.0)

SLOW_REQUEST_MS = 2000
HEALTHY_REQUEST_SAMPLE_RATE = 0.10


@dataclass(frozen=True)
class ServiceInfo:
    """Identity stamped on every request event. Built from Settings."""
    name: str
    version: str
    environment: str

    @classmethod
    def from_settings(cls, settings: Any) -> "ServiceInfo":
        return cls(
            name=settings.app_name.lower().replace(" ", "-") + "-api",
            version=settings.app_version,
            environment=settings.environment,
        )


def enrich_event(**kwargs: Any) -> None:
    """
    Add fields to the current request event.

        enrich_event(**{"search.attempted": 10, "search.failed": 1})

    Dotted keys are expanded into nested objects.
    """
    event = _request_event.get({})
    for key, value in kwargs.items():
        *parents, leaf = key.split(".")
        target = event
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = value


def init_request_event(
    service: ServiceInfo,
    method: str,
    path: str,
    request_id: str | None = None,
    client_ip: str = "",
    search: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Start the event for a request.

    `search` holds the requested coordinate/radius for station searches,
    so a search that fails validation or discovery is still attributable.
    """
    event: dict[str, Any] = {
        "request_id": request_id or uuid.uuid4().hex[:8],
        "service": asdict(service),
        "http": {"method": method, "path": path, "client_ip": client_ip},
    }
    if search is not None:
        event["search"] = search

    _request_event.set(event)
    _request_start.set(time.monotonic())
    return event


def finalize_request_event(status_code: int, error: Exception | None = None) -> dict[str, Any]:
    """Stamp status, duration and error onto the event and return it."""
    event = _request_event.get({})
    event.setdefault("http", {})["status_code"] = status_code
    event["duration_ms"] = int((time.monotonic() - _request_start.get()) * 1000)

    if error is not None:
        event["error"] = {
            "type": type(error).__name__,
            "message": str(error)[:500],
            "details": getattr(error, "details", None),
        }
    return event


def search_degraded(event: dict[str, Any]) -> bool:
    """A search that returned, but with failed lookups, drops or a cut-off."""
    search = event.get("search", {})
    return bool(search.get("failed") or search.get("dropped") or search.get("cancelled"))


def should_sample(event: dict[str, Any]) -> bool:
    """
    Tail sampling: keep every error, slow request and station search
    (searches are the product); keep a tenth of everything else.
    """
    if event.get("http", {}).get("status_code", 200) >= 400:
        return True
    if event.get("duration_ms", 0) > SLOW_REQUEST_MS:
        return True
    if "search" in event:
        return True
    return random.random() < HEALTHY_REQUEST_SAMPLE_RATE


def emit_wide_event(event: dict[str, Any]) -> None:
    """Emit the canonical log line; degraded searches log at warning."""
    if not should_sample(event):
        return

    logger = structlog.get_logger("request")
    status_code = event.get("http", {}).get("status_code", 200)
    if status_code >= 500:
        logger.error("request_completed", **event)
    elif status_code >= 400 or search_degraded(event):
        logger.warning("request_completed", **event)
    else:
        logger.info("request_completed", **event)


def add_request_id(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Processor to add request_id to all log entries."""
    request_id = _request_event.get({}).get("request_id")
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog.

    Args:
        json_logs: JSON output (production) instead of colored console
        log_level: Minimum level for stdlib logging
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_request_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
