"""Structured logging for FleetOps.

Events are emitted through structlog with snake_case event names
(``vehicle_created``, ``rate_limit_exceeded``). Request details are bound
to context variables by :func:`bind_request_context` so every event logged
while handling a request carries its method, path and client.
"""

import logging
import sys
from typing import Any

import structlog
from fastapi import Request

from fleetops import __version__
from fleetops.config import get_settings

SERVICE_NAME = "fleetops"

# Libraries whose INFO output duplicates our own request logging
NOISY_LOGGERS = ("uvicorn.access", "httpx", "redis")


def add_service_info(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Stamp every event with the service name and version."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def setup_logging() -> None:
    """Configure structlog and the standard library root logger."""
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {settings.log_level!r}")

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(request: Request) -> None:
    """Replace the logging context with the current request's details."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else None,
    )
