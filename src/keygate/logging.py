"""Structured logging for KeyGate.

Every screened request binds the client identity, method and path into
structlog's context, so events logged by the limiter, ban list, filter and
broker carry them without passing the identity around.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from keygate import __version__
from keygate.config import Settings, get_settings

REQUEST_CONTEXT_KEYS = ("identity", "method", "path")


def add_service_info(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", "keygate")
    event_dict.setdefault("version", __version__)
    return event_dict


def build_processors(log_format: str) -> list[Processor]:
    """Processor chain shared by every KeyGate logger."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and stdlib logging from the settings."""
    settings = settings or get_settings()
    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=build_processors(settings.log_format),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # The broker logs upstream calls and the metrics middleware counts requests
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@contextmanager
def request_context(identity: str, method: str, path: str) -> Iterator[None]:
    """Bind the request's client identity for every event logged inside."""
    structlog.contextvars.bind_contextvars(identity=identity, method=method, path=path)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*REQUEST_CONTEXT_KEYS)
