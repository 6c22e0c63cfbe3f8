"""
structlog configuration for the analytics service.

Entries are flat key/value events named `<area>.<what>` (`tracking.event_recorded`,
`store.failure`, `http.request`, ...). Context bound through contextvars rides along
automatically: the middleware binds `request_id`, and the tracking service binds
`user_id` / `session_id` around each ingestion call via `tracking_context`.

    logger = get_logger(__name__)
    with tracking_context(user_id=event.user_id):
        logger.info("tracking.event_recorded", page_view_id=pv.id)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

from app.core.config import settings

SERVICE_NAME = "visit-analytics"

# Log aggregators (GCP, Datadog) key on an upper-case `severity`
_SEVERITY = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}


def add_service_fields(
    logger: WrappedLogger, method: str, event_dict: EventDict
) -> EventDict:
    event_dict["severity"] = _SEVERITY.get(method, "INFO")
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    level = level or settings.LOG_LEVEL
    fmt = fmt or settings.LOG_FORMAT

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_service_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # SQL echo and driver chatter go through stdlib logging; keep them quiet
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@contextmanager
def tracking_context(**ids: str | None) -> Iterator[None]:
    """Bind visitor identifiers for the duration of one ingestion call."""
    bound = {key: value for key, value in ids.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
