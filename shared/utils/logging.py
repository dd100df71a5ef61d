"""Structured logging with correlation ID support."""

import contextvars
import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

# Context variable for correlation ID
_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

# Third-party loggers kept at WARNING; httpx logs full request URLs,
# which carry the geocoding API key.
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID in context. Generates one if not provided."""
    cid = correlation_id or str(uuid.uuid4())
    _correlation_id.set(cid)
    return cid


@contextmanager
def correlation_scope(correlation_id: str | None = None, **context: Any) -> Iterator[str]:
    """Bind a correlation ID, plus optional log context, for a block.

    Both are restored on exit, so concurrent job runs scheduled from
    one another keep their own IDs.

    Args:
        correlation_id: ID to bind (generated if not provided)
        **context: Extra key/values merged into every log event in the block
    """
    token = _correlation_id.set(correlation_id or str(uuid.uuid4()))
    try:
        with structlog.contextvars.bound_contextvars(**context):
            yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Processor to add correlation ID to log events."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def _processors(json_format: bool) -> list[Any]:
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer()
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ]


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
    environment: str | None = None,
) -> None:
    """Configure structured logging for a service.

    Args:
        service_name: Name of the service for log context
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Whether to output JSON logs (True for production)
        environment: Deployment environment added to every event
    """
    level = getattr(logging, log_level.upper())

    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    context = {"service": service_name}
    if environment:
        context["environment"] = environment
    structlog.contextvars.bind_contextvars(**context)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)
